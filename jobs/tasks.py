import logging

from celery import shared_task

from core.gateways import get_gateway

# Set up a specific logger for this module
logger = logging.getLogger(__name__)


# --- Notification tasks (fire-and-forget) ---

@shared_task(name="send_sms_notification")
def send_sms_notification(phone, message):
    """Celery task that sends one SMS through the configured gateway."""
    try:
        sent = get_gateway().notifications.send_sms(phone, message)
        if not sent:
            logger.warning(f"SMS to {phone} was not delivered.")
        return sent
    except Exception as e:
        logger.error(f"Error in send_sms_notification task for {phone}: {e}", exc_info=True)
        return False


@shared_task(name="send_email_notification")
def send_email_notification(email, subject, body):
    """Celery task that sends one email through the configured gateway."""
    try:
        sent = get_gateway().notifications.send_email(email, subject, body)
        if not sent:
            logger.warning(f"Email '{subject}' to {email} was not delivered.")
        return sent
    except Exception as e:
        logger.error(f"Error in send_email_notification task for {email}: {e}", exc_info=True)
        return False
