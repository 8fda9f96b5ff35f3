"""
Capability interface shared by the MOCK and REAL backends.

A Gateway bundles four capabilities: `mechanic` (mechanic directory and the
job request read/write channel), `payment`, `notifications` and `auth`.
Business code only ever talks to these objects, never to the mode.
"""
import abc
import logging

from django.db.models import Count, F

from jobs.models import JobRequest
from users.models import Mechanic

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """The external payment processor rejected or failed a call."""


# --- Mechanic directory and job channel ---

class MechanicService(abc.ABC):
    """
    Mechanic directory read plus the job request channel.

    Both backends keep job requests in the Django database; they only differ
    in how the directory is searched.
    """

    def directory_queryset(self):
        return (
            Mechanic.objects.select_related('user')
            .annotate(num_reviews=Count('reviews'))
            .order_by('id')
        )

    @abc.abstractmethod
    def get_nearby_mechanics(self, latitude, longitude):
        """Return the bounded list of mechanics serving this point."""

    def create_job_request(self, job):
        job.save()
        logger.info(f"Created job request {job.id} (status={job.status})")
        return job.id

    def get_job_request(self, job_id, for_update=False):
        """Raises JobRequest.DoesNotExist if the job is gone."""
        queryset = JobRequest.objects.select_related('customer', 'mechanic__user', 'requested_mechanic__user')
        if for_update:
            queryset = queryset.select_for_update(of=('self',))
        return queryset.get(pk=job_id)

    def update_job_request(self, job, fields=None):
        if fields is not None:
            fields = list(fields) + ['updated_at']
        job.save(update_fields=fields)
        return job

    def claim_job_request(self, job_id, mechanic):
        """
        Conditional accept: set status=ACCEPTED and bind the mechanic only if
        the job is still NEW and unassigned. Returns False if another write won.
        """
        updated = JobRequest.objects.filter(
            pk=job_id, status=JobRequest.Status.NEW, mechanic__isnull=True
        ).update(status=JobRequest.Status.ACCEPTED, mechanic=mechanic)
        return updated > 0

    def finish_job_request(self, job_id):
        """Conditional IN_PROGRESS -> COMPLETED write. Returns False if already moved on."""
        updated = JobRequest.objects.filter(
            pk=job_id, status=JobRequest.Status.IN_PROGRESS
        ).update(status=JobRequest.Status.COMPLETED)
        return updated > 0

    def delete_job_request(self, job_id):
        deleted, _ = JobRequest.objects.filter(pk=job_id).delete()
        return deleted > 0

    def subscribe_to_job_request(self, job_id, callback, interval=None):
        """Returns an unsubscribe callable."""
        from jobs.subscriptions import subscribe
        return subscribe(job_id, callback, interval=interval)

    def update_earnings(self, mechanic, amount):
        Mechanic.objects.filter(pk=mechanic.pk).update(
            earnings_today=F('earnings_today') + amount,
            earnings_week=F('earnings_week') + amount,
            earnings_month=F('earnings_month') + amount,
        )
        mechanic.refresh_from_db(fields=['earnings_today', 'earnings_week', 'earnings_month'])
        return mechanic.earnings

    def deduct_week_earnings(self, mechanic, amount):
        """Takes a cashed-out amount off the week bucket; credits that landed meanwhile stay."""
        Mechanic.objects.filter(pk=mechanic.pk).update(earnings_week=F('earnings_week') - amount)
        mechanic.refresh_from_db(fields=['earnings_week'])
        return mechanic.earnings

    def update_status(self, mechanic, is_online):
        mechanic.availability = (
            Mechanic.AvailabilityChoices.AVAILABLE_NOW if is_online
            else Mechanic.AvailabilityChoices.OFFLINE
        )
        mechanic.save(update_fields=['availability'])
        return is_online


# --- Payments ---

class PaymentService(abc.ABC):

    @abc.abstractmethod
    def create_payment_intent(self, amount, currency='usd', mechanic=None):
        """Hold funds for a booking. Returns {"client_secret", "id"}."""

    @abc.abstractmethod
    def capture(self, job_id, amount):
        """Capture held funds. Returns {"success": True} or raises PaymentGatewayError."""

    @abc.abstractmethod
    def payout_to_bank(self, mechanic, amount):
        """Send a mechanic's balance to their bank. Raises PaymentGatewayError."""


# --- Notifications ---

class NotificationService(abc.ABC):
    """Fire-and-forget messaging. Implementations return False instead of raising."""

    @abc.abstractmethod
    def send_sms(self, phone, message):
        ...

    @abc.abstractmethod
    def send_email(self, email, subject, body):
        ...


# --- Auth ---

class AuthService(abc.ABC):

    @abc.abstractmethod
    def deliver_login_code(self, email, otp, is_mechanic=False):
        """Get a one-time login code to the user. Returns True if it was sent."""


class Gateway:
    mode = None
    provider = None

    def __init__(self, mechanic, payment, notifications, auth):
        self.mechanic = mechanic
        self.payment = payment
        self.notifications = notifications
        self.auth = auth

    @property
    def connected(self):
        return True

    def connection_info(self):
        return {"mode": self.mode, "connected": self.connected, "provider": self.provider}
