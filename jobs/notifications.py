"""
Helpers that enqueue customer and mechanic notifications.

Enqueueing never raises: a broker outage is logged and the caller's state
transition goes ahead.
"""
import logging

from .tasks import send_email_notification, send_sms_notification

logger = logging.getLogger(__name__)


def _enqueue_sms(user, message):
    phone = getattr(user, 'mobile_number', None)
    if not phone:
        logger.info(f"No mobile number on file for {user}; skipping SMS: {message}")
        return False
    try:
        send_sms_notification.delay(str(phone), message)
        return True
    except Exception as e:
        logger.warning(f"SMS enqueue failed for {user}: {e}")
        return False


def _enqueue_email(user, subject, body):
    try:
        send_email_notification.delay(user.email, subject, body)
        return True
    except Exception as e:
        logger.warning(f"Email enqueue failed for {user.email}: {e}")
        return False


def notify_customer(job, message, email_subject=None):
    _enqueue_sms(job.customer, message)
    if email_subject:
        _enqueue_email(job.customer, email_subject, message)


def notify_mechanic(mechanic, message, email_subject=None):
    _enqueue_sms(mechanic.user, message)
    if email_subject:
        _enqueue_email(mechanic.user, email_subject, message)
