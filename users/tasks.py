import logging

from celery import shared_task

from core.gateways import get_gateway

# Set up a logger for this module
logger = logging.getLogger(__name__)


@shared_task(name="send_login_code")
def send_login_code(email, otp, is_mechanic=False):
    """Delivers a one-time login code through the configured auth backend."""
    try:
        sent = get_gateway().auth.deliver_login_code(email, otp, is_mechanic=is_mechanic)
        if not sent:
            logger.warning(f"Login code for {email} was not delivered.")
        return sent
    except Exception as e:
        logger.error(f"Error in send_login_code task for {email}: {e}", exc_info=True)
        return False


@shared_task(name="send_mechanic_welcome_email")
def send_mechanic_welcome_email(user_data):
    """Sends the partner welcome email after a mechanic profile is registered."""
    email = user_data.get("email")
    first_name = user_data.get("first_name") or "there"
    try:
        return get_gateway().notifications.send_email(
            email,
            "Welcome to MechanicNow Partner",
            f"Hi {first_name},\n\nYour mechanic profile is live. Go online from your dashboard to start receiving jobs.",
        )
    except Exception as e:
        logger.error(f"Error in send_mechanic_welcome_email task for {email}: {e}", exc_info=True)
        return False
