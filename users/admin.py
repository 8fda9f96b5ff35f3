from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import CustomUser, Mechanic, Review


class MechanicInline(admin.StackedInline):
    model = Mechanic
    fk_name = 'user'
    can_delete = False
    verbose_name_plural = 'Mechanic profile'
    fields = ('bio', 'years_experience', 'specialties', 'certifications', 'availability', 'is_verified')


class ReviewInline(admin.TabularInline):
    model = Review
    fk_name = 'mechanic'
    extra = 0
    fields = ('job', 'author', 'rating', 'text', 'created_at')
    readonly_fields = fields
    can_delete = False


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    """
    Drivers and mechanics share one account model; mechanics get their
    profile edited inline.
    """
    inlines = (MechanicInline,)
    list_display = ("id", "email", "full_name", "mobile_number", "role", "is_active", "date_joined")
    list_filter = ("is_mechanic", "is_active", "is_staff")
    search_fields = ("email", "first_name", "last_name", "mobile_number")
    ordering = ("-date_joined",)
    list_select_related = ('mechanic_profile',)

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Contact", {"fields": ("first_name", "last_name", "mobile_number", "profile_pic")}),
        ("Role", {"fields": ("is_mechanic",)}),
        ("Permissions", {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")}),
        ("Dates", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (None, {
            "classes": ("wide",),
            "fields": ("email", "mobile_number", "is_mechanic", "password1", "password2"),
        }),
    )

    def get_inline_instances(self, request, obj=None):
        # Only existing mechanics have a profile to edit.
        if obj is None or not obj.is_mechanic:
            return []
        return super().get_inline_instances(request, obj)

    @admin.display(description='Name')
    def full_name(self, obj):
        return obj.get_full_name()

    @admin.display(description='Role')
    def role(self, obj):
        if not obj.is_mechanic:
            return "Driver"
        profile = getattr(obj, 'mechanic_profile', None)
        return "Mechanic (verified)" if profile is not None and profile.is_verified else "Mechanic"


@admin.register(Mechanic)
class MechanicAdmin(admin.ModelAdmin):
    list_display = ('name', 'availability', 'rating', 'jobs_completed', 'earnings_week', 'is_verified', 'stripe_connected')
    list_filter = ('availability', 'is_verified', 'stripe_connected')
    search_fields = ('user__email', 'user__first_name', 'user__last_name')
    list_select_related = ('user',)
    readonly_fields = ('rating', 'jobs_completed', 'earnings_today', 'earnings_week', 'earnings_month')
    inlines = (ReviewInline,)
    actions = ['verify_mechanics', 'take_offline']

    @admin.action(description='Verify selected mechanics')
    def verify_mechanics(self, request, queryset):
        count = queryset.update(is_verified=True)
        self.message_user(request, f"{count} mechanics verified.")

    @admin.action(description='Take selected mechanics offline')
    def take_offline(self, request, queryset):
        count = queryset.exclude(availability=Mechanic.AvailabilityChoices.ON_ANOTHER_JOB).update(
            availability=Mechanic.AvailabilityChoices.OFFLINE
        )
        self.message_user(request, f"{count} mechanics set offline; mechanics on a job were left alone.")


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ('id', 'mechanic', 'author', 'rating', 'created_at')
    list_filter = ('rating',)
    search_fields = ('mechanic__user__email', 'author__email', 'text')
    raw_id_fields = ('mechanic', 'job', 'author')
