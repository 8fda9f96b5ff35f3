from django.contrib import admin
from .models import ChatMessage, JobRequest


class ChatMessageInline(admin.TabularInline):
    model = ChatMessage
    extra = 0
    can_delete = False
    fields = ('created_at', 'sender_role', 'sender', 'text')
    readonly_fields = fields


@admin.register(JobRequest)
class JobRequestAdmin(admin.ModelAdmin):
    """
    Customizes the admin interface for the JobRequest model.
    """
    list_display = (
        'id',
        'customer',
        'mechanic',
        'status',
        'vehicle',
        'urgency',
        'total',
        'payment_status',
        'settlement_method',
        'created_at',
    )

    # Filters available on the right sidebar
    list_filter = ('status', 'urgency', 'payment_status', 'settlement_method', 'created_at')

    search_fields = (
        'id__icontains',
        'customer__email',
        'mechanic__user__email',
        'vehicle',
        'location'
    )

    # Money and lifecycle fields only change through the lifecycle operations
    readonly_fields = (
        'id', 'created_at', 'updated_at', 'subtotal', 'tax', 'total', 'platform_fee',
        'mechanic_payout', 'payout', 'payment_intent_id', 'payout_summary',
    )

    fieldsets = (
        ('Core Information', {
            'fields': ('id', 'status', 'urgency')
        }),
        ('Customer and Mechanic', {
            'fields': ('customer', 'requested_mechanic', 'mechanic')
        }),
        ('Vehicle and Services', {
            'fields': ('vehicle', 'issue', 'services')
        }),
        ('Location Information', {
            'fields': ('location', 'latitude', 'longitude', 'driver_latitude', 'driver_longitude')
        }),
        ('Pricing and Payment', {
            'fields': (
                'subtotal', 'tax', 'total', 'platform_fee', 'mechanic_payout', 'payout',
                'payment_status', 'payment_intent_id',
            )
        }),
        ('Completion', {
            'fields': (
                'completion_description', 'parts_used', 'parts_cost', 'completion_notes',
                'settlement_method', 'payout_summary',
            )
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at')
        }),
    )

    # Make foreign key fields searchable with a dropdown/search box
    raw_id_fields = ('customer', 'requested_mechanic', 'mechanic')
    inlines = (ChatMessageInline,)
