from decimal import Decimal

from django.db import models
from django.conf import settings
from users.models import Mechanic


class JobRequest(models.Model):
    """
    A single customer-to-mechanic service transaction.

    `mechanic` stays null while the job is NEW and is fixed by the accept
    transition. `requested_mechanic` is the mechanic the customer picked at
    booking; it only decides who is notified about the new job.
    """
    class Status(models.TextChoices):
        NEW = 'NEW', 'New'
        ACCEPTED = 'ACCEPTED', 'Accepted'
        ARRIVED = 'ARRIVED', 'Arrived'
        IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
        COMPLETED = 'COMPLETED', 'Completed'

    class Urgency(models.TextChoices):
        HIGH = 'HIGH', 'High'
        NORMAL = 'NORMAL', 'Normal'

    class PaymentStatus(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        AUTHORIZED = 'AUTHORIZED', 'Authorized'
        CAPTURED = 'CAPTURED', 'Captured'
        FAILED = 'FAILED', 'Failed'

    class SettlementMethod(models.TextChoices):
        CARD = 'CARD', 'Card'
        CASH = 'CASH', 'Cash'
        EXTERNAL = 'EXTERNAL', 'External'

    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='job_requests')
    requested_mechanic = models.ForeignKey(
        Mechanic,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='requested_jobs'
    )
    mechanic = models.ForeignKey(
        Mechanic,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='assigned_jobs'
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.NEW)

    vehicle = models.CharField(max_length=255)
    issue = models.TextField(blank=True, default="")
    services = models.JSONField(default=list, blank=True)  # snapshot of the booked catalog items

    # Customer location
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    location = models.CharField(max_length=255, blank=True, null=True)  # user-provided address

    # Live mechanic location, written during active jobs
    driver_latitude = models.FloatField(null=True, blank=True)
    driver_longitude = models.FloatField(null=True, blank=True)

    payout = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    urgency = models.CharField(max_length=10, choices=Urgency.choices, default=Urgency.NORMAL)

    # Price breakdown, fixed at booking time
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    tax = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    mechanic_payout = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))

    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_intent_id = models.CharField(max_length=255, blank=True, default="")

    # Completion details, populated only at completion
    completion_description = models.TextField(blank=True, default="")
    parts_used = models.TextField(blank=True, default="")
    parts_cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    completion_notes = models.TextField(blank=True, default="")
    settlement_method = models.CharField(max_length=10, choices=SettlementMethod.choices, blank=True, default="")
    payout_summary = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Job {self.id} for {self.vehicle} by {self.customer.email}"

    @property
    def price_breakdown(self):
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
            "platform_fee": self.platform_fee,
            "mechanic_payout": self.mechanic_payout,
        }

    @property
    def is_active(self):
        return self.status in (self.Status.ACCEPTED, self.Status.ARRIVED, self.Status.IN_PROGRESS)


class ChatMessage(models.Model):
    """One line of the per-job conversation between the customer and the assigned mechanic."""

    class SenderRole(models.TextChoices):
        CUSTOMER = 'customer', 'Customer'
        MECHANIC = 'mechanic', 'Mechanic'

    job = models.ForeignKey(JobRequest, on_delete=models.CASCADE, related_name='chat_messages')
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='chat_messages',
    )
    sender_role = models.CharField(max_length=10, choices=SenderRole.choices)
    text = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Job {self.job_id} [{self.sender_role}]: {self.text[:40]}"
