"""
REAL backend: payments, payouts and SMS go through the serverless function
layer, email goes through the Brevo transactional API, and the mechanic
directory is a radius search over verified, online mechanics.
"""
import logging

import requests
import sib_api_v3_sdk
from django.conf import settings
from django.db.models import F
from django.db.models.functions import Cos, Power, Radians, Sin, Sqrt
from django.template.loader import render_to_string
from sib_api_v3_sdk.rest import ApiException

from users.models import Mechanic

from .base import (
    AuthService,
    Gateway,
    MechanicService,
    NotificationService,
    PaymentGatewayError,
    PaymentService,
)

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371


class FunctionsClient:
    """
    Minimal client for HTTPS callable functions: the request body is
    {"data": payload} and the answer is {"result": ...}.
    """

    def __init__(self, base_url, api_key=None, timeout=15):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()

    @property
    def configured(self):
        return bool(self.base_url)

    def call(self, name, payload):
        if not self.configured:
            raise requests.RequestException("Functions base URL is not configured")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        response = self.session.post(
            f"{self.base_url}/{name}",
            json={"data": payload},
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json().get("result") or {}


class RealMechanicService(MechanicService):

    def __init__(self, radius_km=15):
        self.radius_km = radius_km

    def get_nearby_mechanics(self, latitude, longitude):
        logger.info(f"Searching for mechanics near (lat: {latitude}, lon: {longitude}) within {self.radius_km}km.")
        lat_r = Radians(latitude)
        lon_r = Radians(longitude)
        mechanics = (
            self.directory_queryset()
            .filter(is_verified=True, current_latitude__isnull=False, current_longitude__isnull=False)
            .exclude(availability=Mechanic.AvailabilityChoices.OFFLINE)
            .annotate(
                dlat=Radians(F('current_latitude')) - lat_r,
                dlon=Radians(F('current_longitude')) - lon_r,
                a=Power(Sin(F('dlat') / 2), 2) + Cos(lat_r) * Cos(Radians(F('current_latitude'))) * Power(Sin(F('dlon') / 2), 2),
                c=2 * Sqrt(F('a')),
                distance=EARTH_RADIUS_KM * F('c')
            )
            .filter(distance__lte=self.radius_km)
            .order_by('distance')
        )
        mechanics = list(mechanics)
        logger.info(f"Found {len(mechanics)} nearby mechanics.")
        return mechanics


class RealPaymentService(PaymentService):

    def __init__(self, functions):
        self.functions = functions

    def create_payment_intent(self, amount, currency='usd', mechanic=None):
        payload = {
            "amount": int(amount * 100),  # smallest currency unit
            "currency": currency,
            "mechanicStripeId": getattr(mechanic, 'stripe_account_id', None) or None,
        }
        try:
            result = self.functions.call("createPaymentIntent", payload)
        except requests.RequestException as e:
            logger.error(f"Payment intent error: {e}", exc_info=True)
            raise PaymentGatewayError("Failed to initiate payment") from e
        return {"client_secret": result.get("clientSecret"), "id": result.get("id")}

    def capture(self, job_id, amount):
        try:
            self.functions.call("capturePayment", {"jobId": str(job_id), "amount": float(amount)})
        except requests.RequestException as e:
            logger.error(f"Capture error for job {job_id}: {e}", exc_info=True)
            raise PaymentGatewayError("Failed to capture payment") from e
        return {"success": True}

    def payout_to_bank(self, mechanic, amount):
        try:
            result = self.functions.call("payoutToBank", {"amount": float(amount)})
        except requests.RequestException as e:
            logger.error(f"Payout error for mechanic {mechanic.id}: {e}", exc_info=True)
            raise PaymentGatewayError("Payout failed") from e
        return {"success": True, "payout_id": result.get("payoutId")}


class RealNotificationService(NotificationService):

    def __init__(self, functions, brevo_api_key=None, sender_email=None, sender_name="MechanicNow"):
        self.functions = functions
        self.sender = {"name": sender_name, "email": sender_email}
        configuration = sib_api_v3_sdk.Configuration()
        if brevo_api_key:
            configuration.api_key['api-key'] = brevo_api_key
        else:
            logger.error("BREVO_API_KEY is not configured. Email sending will fail.")
        self.email_api = sib_api_v3_sdk.TransactionalEmailsApi(sib_api_v3_sdk.ApiClient(configuration))
        self.email_configured = bool(brevo_api_key)

    def send_sms(self, phone, message):
        try:
            self.functions.call("sendSms", {"phone": str(phone), "message": message})
            return True
        except requests.RequestException as e:
            logger.error(f"SMS to {phone} failed: {e}")
            return False

    def send_email(self, email, subject, body):
        if not self.email_configured:
            logger.warning(f"Skipping email '{subject}' to {email}: Brevo is not configured.")
            return False

        html_message = render_to_string("emails/notification.html", {"subject": subject, "body": body})
        send_smtp_email = sib_api_v3_sdk.SendSmtpEmail(
            to=[{"email": email}],
            sender=self.sender,
            subject=subject,
            html_content=html_message,
            text_content=body,
        )
        try:
            api_response = self.email_api.send_transac_email(send_smtp_email)
            logger.info(f"Email '{subject}' sent to {email} via Brevo. Message ID: {api_response.message_id}")
            return True
        except ApiException as e:
            logger.error(f"Brevo API error when sending email to {email}: {e.body}")
            return False


class RealAuthService(AuthService):

    def __init__(self, notifications):
        self.notifications = notifications

    def deliver_login_code(self, email, otp, is_mechanic=False):
        product = "MechanicNow Partner" if is_mechanic else "MechanicNow"
        return self.notifications.send_email(
            email,
            f"Your login code for {product}",
            f"Your login code is {otp}. It expires in a few minutes.",
        )


class RealGateway(Gateway):
    mode = "REAL"
    provider = "Cloud Functions"

    def __init__(self):
        config = settings.MECHANICNOW
        self.functions = FunctionsClient(
            config.get("FUNCTIONS_BASE_URL"),
            api_key=config.get("FUNCTIONS_API_KEY"),
            timeout=config.get("FUNCTIONS_TIMEOUT", 15),
        )
        notifications = RealNotificationService(
            self.functions,
            brevo_api_key=settings.BREVO_API_KEY,
            sender_email=settings.BREVO_SENDER_EMAIL,
            sender_name=settings.BREVO_SENDER_NAME,
        )
        super().__init__(
            mechanic=RealMechanicService(radius_km=config.get("NEARBY_RADIUS_KM", 15)),
            payment=RealPaymentService(self.functions),
            notifications=notifications,
            auth=RealAuthService(notifications),
        )

    @property
    def connected(self):
        return self.functions.configured
