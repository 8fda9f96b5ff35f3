from decimal import Decimal

from django.db import models
from django.conf import settings
from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.core.validators import MaxValueValidator, MinValueValidator
from phonenumber_field.modelfields import PhoneNumberField

# --- User Management ---

class CustomUserManager(BaseUserManager):
    """
    Custom manager for the CustomUser model where email is the unique identifier
    instead of a username.
    """
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("The Email field must be set")
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()  # OTP-only login
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(email, password, **extra_fields)


class CustomUser(AbstractUser):
    """
    The primary user model for the application. Customers and mechanics
    both log in through this model; mechanics additionally own a Mechanic profile.
    """
    username = None  # Remove the default username field
    email = models.EmailField(unique=True)
    profile_pic = models.CharField(max_length=500, blank=True, null=True, default="")
    mobile_number = PhoneNumberField(blank=True, null=True, region="US")
    is_mechanic = models.BooleanField(default=False)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []  # No extra fields required for createsuperuser command

    objects = CustomUserManager()

    def __str__(self):
        return self.email

# --- Application-Specific Models ---

class Mechanic(models.Model):
    """
    Provider profile attached to a CustomUser.

    Rating and the review collection change only through review submission;
    availability changes only through the mechanic's own online/offline toggle
    and the job lifecycle. The earnings_* columns are the rolling Earnings
    aggregate: incremented on job completion, week bucket reset on cash-out.
    """
    class AvailabilityChoices(models.TextChoices):
        AVAILABLE_NOW = 'AVAILABLE_NOW', 'Available Now'
        ON_ANOTHER_JOB = 'ON_ANOTHER_JOB', 'On Another Job'
        OFFLINE = 'OFFLINE', 'Offline'

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='mechanic_profile'
    )
    bio = models.TextField(blank=True, default="")
    years_experience = models.PositiveIntegerField(default=1)
    specialties = models.JSONField(default=list, blank=True)
    certifications = models.JSONField(default=list, blank=True)

    rating = models.FloatField(
        default=5.0,
        validators=[MinValueValidator(0.0), MaxValueValidator(5.0)]
    )
    jobs_completed = models.PositiveIntegerField(default=0)

    # Simple latitude and longitude fields, updated while the mechanic is online.
    current_latitude = models.FloatField(null=True, blank=True)
    current_longitude = models.FloatField(null=True, blank=True)

    is_verified = models.BooleanField(
        default=False,
        help_text="Designates whether the mechanic has been verified by an admin."
    )
    availability = models.CharField(
        max_length=20,
        choices=AvailabilityChoices.choices,
        default=AvailabilityChoices.OFFLINE,
        help_text="The mechanic's current availability status."
    )

    stripe_account_id = models.CharField(max_length=255, blank=True, default="")
    stripe_connected = models.BooleanField(default=False)

    earnings_today = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    earnings_week = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    earnings_month = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    def __str__(self):
        return f"{self.user.email} - {self.name}"

    @property
    def name(self):
        return self.user.get_full_name() or self.user.email

    @property
    def review_count(self):
        # Directory queries annotate num_reviews to avoid one COUNT per mechanic.
        annotated = getattr(self, 'num_reviews', None)
        if annotated is not None:
            return annotated
        return self.reviews.count()

    @property
    def is_online(self):
        return self.availability != self.AvailabilityChoices.OFFLINE

    @property
    def earnings(self):
        return {
            "today": self.earnings_today,
            "week": self.earnings_week,
            "month": self.earnings_month,
        }


class Review(models.Model):
    """
    A customer's review of a completed job. One review per job.
    """
    mechanic = models.ForeignKey(Mechanic, on_delete=models.CASCADE, related_name='reviews')
    job = models.OneToOneField(
        'jobs.JobRequest',
        on_delete=models.CASCADE,
        related_name='review'
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='reviews_written'
    )
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    text = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Review {self.rating}/5 for {self.mechanic} by {self.author.email}"
