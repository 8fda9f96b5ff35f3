"""
Local MOCK backend: no external calls, every side effect is logged.
"""
import logging
import time
from uuid import uuid4

from jobs.pricing import platform_fee_rate

from .base import AuthService, Gateway, MechanicService, NotificationService, PaymentService

logger = logging.getLogger(__name__)


class MockMechanicService(MechanicService):

    def get_nearby_mechanics(self, latitude, longitude):
        # Distance-agnostic: every registered mechanic is "nearby" locally.
        mechanics = list(self.directory_queryset())
        logger.info(f"[Mock Directory] {len(mechanics)} mechanics for (lat: {latitude}, lon: {longitude}).")
        return mechanics


class MockPaymentService(PaymentService):

    def create_payment_intent(self, amount, currency='usd', mechanic=None):
        intent_id = f"pi_mock_{uuid4().hex[:12]}"
        logger.info(f"[Stripe Mock] Created payment intent {intent_id} for {amount} {currency}.")
        return {"client_secret": f"{intent_id}_secret_mock", "id": intent_id}

    def capture(self, job_id, amount):
        platform_fee = amount * platform_fee_rate()
        logger.info(f"[Stripe Mock] Captured payment of ${amount} for job {job_id}.")
        logger.info(f"[Stripe Mock] Platform fee: -${platform_fee:.2f}")
        logger.info(f"[Stripe Mock] Transferred to connected account: ${amount - platform_fee:.2f}")
        return {"success": True}

    def payout_to_bank(self, mechanic, amount):
        payout_id = f"po_{int(time.time())}"
        logger.info(f"[Mock Payout] Initiated transfer of ${amount} to bank for mechanic {mechanic.id}.")
        return {"success": True, "payout_id": payout_id}


class MockNotificationService(NotificationService):

    def send_sms(self, phone, message):
        logger.info(f"[SMS] To {phone}: {message}")
        return True

    def send_email(self, email, subject, body):
        logger.info(f"[Email] To {email}: {subject}")
        return True


class MockAuthService(AuthService):

    def deliver_login_code(self, email, otp, is_mechanic=False):
        # Local/dev only: the code is never sent anywhere.
        logger.info(f"[Mock Auth] Login code for {email}: {otp}")
        return True


class MockGateway(Gateway):
    mode = "MOCK"
    provider = "Local Database"

    def __init__(self):
        super().__init__(
            mechanic=MockMechanicService(),
            payment=MockPaymentService(),
            notifications=MockNotificationService(),
            auth=MockAuthService(),
        )
