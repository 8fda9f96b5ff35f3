"""
Job lifecycle state machine.

    NEW -> ACCEPTED -> ARRIVED -> IN_PROGRESS -> COMPLETED

Every transition runs inside a transaction against a locked row. Accept and
complete are also guarded by conditional writes, so two concurrent accepts
bind exactly one mechanic and a replayed completion never pays out twice.
Notifications go out after the transaction has closed.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.db.models import F

from core.gateways import PaymentGatewayError, get_gateway
from users.models import Mechanic

from .catalog import ServiceType
from .models import JobRequest
from .notifications import notify_customer, notify_mechanic
from .pricing import ZERO, capture_amount, completion_summary, compute_price_breakdown

logger = logging.getLogger(__name__)

JobStatus = JobRequest.Status
ACTIVE_STATUSES = (JobRequest.Status.ACCEPTED, JobRequest.Status.ARRIVED, JobRequest.Status.IN_PROGRESS)
SettlementMethod = JobRequest.SettlementMethod

VALID_TRANSITIONS = {
    JobStatus.NEW: frozenset({JobStatus.ACCEPTED}),
    JobStatus.ACCEPTED: frozenset({JobStatus.ARRIVED}),
    JobStatus.ARRIVED: frozenset({JobStatus.IN_PROGRESS}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED}),
    JobStatus.COMPLETED: frozenset(),
}

MSG_ON_THE_WAY = "MechanicNow: Your mechanic is on the way!"
MSG_ARRIVED = "MechanicNow: Your mechanic has arrived."
MSG_STARTED = "MechanicNow: Work on your vehicle has started."


# --- Errors ---

class JobLifecycleError(Exception):
    pass


class JobValidationError(JobLifecycleError):
    pass


class CompletionValidationError(JobValidationError):
    pass


class JobNotFoundError(JobLifecycleError):

    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job request {job_id} not found.")


class InvalidTransitionError(JobLifecycleError):

    def __init__(self, job_id, current, target):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot move from {current} to {target}.")


class JobUnavailableError(JobLifecycleError):

    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__("This job is no longer available.")


class NotAssignedMechanicError(JobLifecycleError):

    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__("You are not the mechanic assigned to this job.")


class PaymentCaptureError(JobLifecycleError):

    def __init__(self, job_id, reason=""):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Payment capture failed for job {job_id}. {reason}".strip())


# --- Transition table ---

def can_transition(current, target):
    try:
        return JobStatus(target) in VALID_TRANSITIONS[JobStatus(current)]
    except ValueError:
        return False


def require_transition(job, target):
    if not can_transition(job.status, target):
        logger.warning(f"Rejected transition for job {job.id}: {job.status} -> {target}")
        raise InvalidTransitionError(job.id, job.status, target)


@dataclass
class CompletionDetails:
    description: str
    parts: str = ""
    parts_cost: Decimal = field(default=ZERO)
    notes: str = ""

    def validate(self):
        if not (self.description or "").strip():
            raise CompletionValidationError("A description of the work performed is required.")
        try:
            cost = Decimal(str(self.parts_cost or 0))
        except InvalidOperation:
            raise CompletionValidationError("Parts cost must be a number.")
        if cost < 0:
            raise CompletionValidationError("Parts cost cannot be negative.")
        self.parts_cost = cost


def _load_job(gateway, job_id, for_update=False):
    try:
        return gateway.mechanic.get_job_request(job_id, for_update=for_update)
    except JobRequest.DoesNotExist:
        raise JobNotFoundError(job_id)


def _require_assigned(job, mechanic):
    if job.mechanic_id != mechanic.pk:
        logger.warning(f"Mechanic {mechanic.pk} tried to act on job {job.id} assigned to {job.mechanic_id}")
        raise NotAssignedMechanicError(job.id)


def _include_parts_in_earnings():
    return bool(settings.MECHANICNOW.get("EARNINGS_INCLUDE_PARTS", False))


# --- Operations ---

def create_job_request(customer, vehicle, services, location=None, latitude=None, longitude=None,
                       requested_mechanic=None, payment_intent_id=None):
    """
    Book a new job from the selected catalog items.

    The job starts NEW with no mechanic bound. Urgency is HIGH when any
    selected item is a repair. The requested mechanic, if any, is only
    notified; the assignment happens on accept.
    """
    services = list(services)
    if not services:
        raise JobValidationError("Select at least one service.")
    if not (vehicle or "").strip():
        raise JobValidationError("Vehicle is required.")

    breakdown = compute_price_breakdown(services)
    urgency = (
        JobRequest.Urgency.HIGH
        if any(item.type == ServiceType.REPAIR for item in services)
        else JobRequest.Urgency.NORMAL
    )
    job = JobRequest(
        customer=customer,
        requested_mechanic=requested_mechanic,
        status=JobStatus.NEW,
        vehicle=vehicle.strip(),
        issue=", ".join(item.name for item in services),
        services=[item.to_dict() for item in services],
        latitude=latitude,
        longitude=longitude,
        location=location,
        payout=breakdown.mechanic_payout,
        urgency=urgency,
        subtotal=breakdown.subtotal,
        tax=breakdown.tax,
        total=breakdown.total,
        platform_fee=breakdown.platform_fee,
        mechanic_payout=breakdown.mechanic_payout,
        payment_status=JobRequest.PaymentStatus.AUTHORIZED if payment_intent_id else JobRequest.PaymentStatus.PENDING,
        payment_intent_id=payment_intent_id or "",
    )
    get_gateway().mechanic.create_job_request(job)
    logger.info(f"Job {job.id} booked by {customer.email}: {job.issue} (total ${job.total})")

    if requested_mechanic is not None:
        notify_mechanic(requested_mechanic, f"New Job: {job.vehicle} - {job.issue}. Payout: ${job.payout}")
    return job


def accept_job(job_id, mechanic):
    gateway = get_gateway()
    with transaction.atomic():
        if not gateway.mechanic.claim_job_request(job_id, mechanic):
            if not JobRequest.objects.filter(pk=job_id).exists():
                raise JobNotFoundError(job_id)
            logger.warning(f"Mechanic {mechanic.pk} lost the race for job {job_id}")
            raise JobUnavailableError(job_id)
        job = _load_job(gateway, job_id)
        mechanic.availability = Mechanic.AvailabilityChoices.ON_ANOTHER_JOB
        mechanic.save(update_fields=['availability'])

    logger.info(f"Job {job_id} accepted by mechanic {mechanic.pk}")
    notify_customer(job, MSG_ON_THE_WAY)
    return job


def _advance(job_id, mechanic, target, message):
    gateway = get_gateway()
    with transaction.atomic():
        job = _load_job(gateway, job_id, for_update=True)
        _require_assigned(job, mechanic)
        require_transition(job, target)
        job.status = target
        gateway.mechanic.update_job_request(job, fields=['status'])

    logger.info(f"Job {job_id} is now {target}")
    notify_customer(job, message)
    return job


def mark_arrived(job_id, mechanic):
    return _advance(job_id, mechanic, JobStatus.ARRIVED, MSG_ARRIVED)


def start_job(job_id, mechanic):
    return _advance(job_id, mechanic, JobStatus.IN_PROGRESS, MSG_STARTED)


def _release_mechanic(mechanic, finished_job_id):
    """
    Back to AVAILABLE_NOW only from ON_ANOTHER_JOB and only when no other
    accepted job is still open. A mechanic who went OFFLINE mid-job stays offline.
    """
    still_busy = (
        JobRequest.objects.filter(mechanic=mechanic, status__in=ACTIVE_STATUSES)
        .exclude(pk=finished_job_id)
        .exists()
    )
    if not still_busy:
        Mechanic.objects.filter(
            pk=mechanic.pk, availability=Mechanic.AvailabilityChoices.ON_ANOTHER_JOB
        ).update(availability=Mechanic.AvailabilityChoices.AVAILABLE_NOW)


def complete_job(job_id, mechanic, details, settlement_method):
    """
    Finish the job and settle it.

    Card jobs with a held payment are captured as the last step before
    commit, after every local write has gone through. A failed capture rolls
    the whole completion back and the job stays IN_PROGRESS with its payment
    status untouched.
    """
    details.validate()
    try:
        method = SettlementMethod(settlement_method)
    except ValueError:
        raise CompletionValidationError(f"Unknown settlement method: {settlement_method}")

    gateway = get_gateway()
    with transaction.atomic():
        job = _load_job(gateway, job_id, for_update=True)
        _require_assigned(job, mechanic)
        require_transition(job, JobStatus.COMPLETED)
        if not gateway.mechanic.finish_job_request(job.id):
            raise InvalidTransitionError(job.id, job.status, JobStatus.COMPLETED)

        summary = completion_summary(job.payout, details.parts_cost)
        job.status = JobStatus.COMPLETED
        job.completion_description = details.description.strip()
        job.parts_used = details.parts
        job.parts_cost = summary.parts_cost
        job.completion_notes = details.notes
        job.settlement_method = method
        job.payment_status = (
            JobRequest.PaymentStatus.CAPTURED if method == SettlementMethod.CARD
            else JobRequest.PaymentStatus.PENDING
        )
        job.payout_summary = summary.to_dict()
        gateway.mechanic.update_job_request(job, fields=[
            'status', 'completion_description', 'parts_used', 'parts_cost', 'completion_notes',
            'settlement_method', 'payment_status', 'payout_summary',
        ])

        earned = job.payout + (summary.parts_cost if _include_parts_in_earnings() else ZERO)
        gateway.mechanic.update_earnings(mechanic, earned)
        Mechanic.objects.filter(pk=mechanic.pk).update(jobs_completed=F('jobs_completed') + 1)
        _release_mechanic(mechanic, job.id)
        mechanic.refresh_from_db(fields=['jobs_completed', 'availability'])

        if method == SettlementMethod.CARD and job.payment_intent_id:
            amount = capture_amount(job.payout, details.parts_cost)
            try:
                gateway.payment.capture(job.id, amount)
            except PaymentGatewayError as e:
                logger.error(f"Capture of ${amount} failed for job {job.id}: {e}")
                raise PaymentCaptureError(job.id, str(e)) from e

    logger.info(f"Job {job.id} completed by mechanic {mechanic.pk} ({method}, earned ${earned})")
    notify_customer(
        job,
        f"MechanicNow: Your service is complete. Total: ${summary.customer_total}",
        email_subject="Your MechanicNow receipt",
    )
    return job


def decline_job(job_id, mechanic):
    gateway = get_gateway()
    with transaction.atomic():
        job = _load_job(gateway, job_id, for_update=True)
        if job.status != JobStatus.NEW:
            raise InvalidTransitionError(job.id, job.status, "DECLINED")
        gateway.mechanic.delete_job_request(job.id)
    logger.info(f"Job {job_id} declined by mechanic {mechanic.pk} and removed.")


def update_driver_location(job_id, mechanic, latitude, longitude):
    gateway = get_gateway()
    job = _load_job(gateway, job_id)
    _require_assigned(job, mechanic)
    if not job.is_active:
        raise InvalidTransitionError(job.id, job.status, "LOCATION_UPDATE")

    job.driver_latitude = latitude
    job.driver_longitude = longitude
    gateway.mechanic.update_job_request(job, fields=['driver_latitude', 'driver_longitude'])

    mechanic.current_latitude = latitude
    mechanic.current_longitude = longitude
    mechanic.save(update_fields=['current_latitude', 'current_longitude'])
    return job


def cash_out(mechanic):
    """
    Pay the week's earnings out to the bank. Returns (payout result, amount).
    Only the amount paid is taken off the bucket, so a completion credited
    while the payout is in flight is kept.
    """
    mechanic.refresh_from_db(fields=['earnings_week'])
    amount = mechanic.earnings_week
    if amount <= 0:
        raise JobValidationError("No earnings available to cash out.")

    gateway = get_gateway()
    result = gateway.payment.payout_to_bank(mechanic, amount)
    gateway.mechanic.deduct_week_earnings(mechanic, amount)
    logger.info(f"Mechanic {mechanic.pk} cashed out ${amount}")
    return result, amount


def set_online(mechanic, is_online):
    get_gateway().mechanic.update_status(mechanic, is_online)
    logger.info(f"Mechanic {mechanic.pk} is now {'online' if is_online else 'offline'}")
    return mechanic
