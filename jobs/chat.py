"""
Per-job chat between a customer and the mechanic working the job.

Only the job's customer and its assigned mechanic take part. While a job is
still NEW nobody is assigned, so only the customer can write. Delivery is
through the same polling feed as job updates (see `subscriptions.subscribe_chat`).
"""
import logging

from .lifecycle import JobNotFoundError, JobValidationError, NotAssignedMechanicError
from .models import ChatMessage, JobRequest

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000


def _load_job(job_id):
    job = JobRequest.objects.select_related('mechanic').filter(pk=job_id).first()
    if job is None:
        raise JobNotFoundError(job_id)
    return job


def chat_role(job, user):
    """The sender role `user` has in this job's chat, or NotAssignedMechanicError."""
    if job.customer_id == user.pk:
        return ChatMessage.SenderRole.CUSTOMER
    if job.mechanic_id is not None and job.mechanic.user_id == user.pk:
        return ChatMessage.SenderRole.MECHANIC
    raise NotAssignedMechanicError(job.id)


def open_chat(job_id, user):
    """Loads the job and checks `user` may take part. Returns (job, role)."""
    job = _load_job(job_id)
    return job, chat_role(job, user)


def post_chat_message(job_id, user, text):
    if not isinstance(text, str):
        raise JobValidationError("Message text is required.")
    text = text.strip()
    if not text:
        raise JobValidationError("Message text is required.")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise JobValidationError(f"Messages are limited to {MAX_MESSAGE_LENGTH} characters.")

    job, role = open_chat(job_id, user)
    message = ChatMessage.objects.create(job=job, sender=user, sender_role=role, text=text)
    logger.info(f"Chat message {message.pk} on job {job.id} from {role}")
    return message


def list_chat_messages(job_id, user):
    job, _ = open_chat(job_id, user)
    return list(job.chat_messages.select_related('sender'))
