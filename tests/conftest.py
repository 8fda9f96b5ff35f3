"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from core.gateways import reset_gateway, set_gateway
from core.gateways.base import PaymentGatewayError
from core.gateways.mock import MockGateway, MockNotificationService, MockPaymentService
from MechanicNow.celery import app as celery_app
from users.models import CustomUser, Mechanic


class RecordingNotificationService(MockNotificationService):
    """Keeps every SMS and email instead of only logging them."""

    def __init__(self):
        self.sms = []
        self.emails = []

    def send_sms(self, phone, message):
        self.sms.append((phone, message))
        return True

    def send_email(self, email, subject, body):
        self.emails.append((email, subject, body))
        return True


class RecordingPaymentService(MockPaymentService):

    def __init__(self, fail_capture=False):
        self.fail_capture = fail_capture
        self.captures = []
        self.payouts = []

    def capture(self, job_id, amount):
        if self.fail_capture:
            raise PaymentGatewayError("card declined")
        self.captures.append((job_id, amount))
        return {"success": True}

    def payout_to_bank(self, mechanic, amount):
        self.payouts.append((mechanic.pk, amount))
        return {"success": True, "payout_id": "po_test"}


@pytest.fixture(autouse=True)
def eager_celery():
    """Run .delay() inline so notification side effects are observable."""
    # Config is loaded with namespace="CELERY", so the prefixed key is the one read.
    celery_app.conf.CELERY_TASK_ALWAYS_EAGER = True
    yield
    celery_app.conf.CELERY_TASK_ALWAYS_EAGER = False


@pytest.fixture(autouse=True)
def clear_cache():
    """Cached responses and OTPs must not leak between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def mock_backend(settings):
    settings.MECHANICNOW = {**settings.MECHANICNOW, "BACKEND_MODE": "MOCK", "EARNINGS_INCLUDE_PARTS": False}
    reset_gateway()
    yield
    reset_gateway()


@pytest.fixture
def gateway():
    """A MOCK gateway whose payment and notification calls are recorded."""
    gw = MockGateway()
    gw.payment = RecordingPaymentService()
    gw.notifications = RecordingNotificationService()
    set_gateway(gw)
    return gw


@pytest.fixture
def customer(db):
    return CustomUser.objects.create_user(
        email="driver@example.com",
        first_name="Dana",
        last_name="Driver",
        mobile_number="+14155550100",
    )


@pytest.fixture
def make_mechanic(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        user = CustomUser.objects.create_user(
            email=f"mechanic{counter['n']}@example.com",
            first_name="Mike",
            last_name=f"Mechanic{counter['n']}",
            mobile_number=f"+1415555020{counter['n'] % 10}",
            is_mechanic=True,
        )
        fields = {
            "rating": 4.8,
            "specialties": ["Brakes", "Diagnostics"],
            "availability": Mechanic.AvailabilityChoices.AVAILABLE_NOW,
            "is_verified": True,
            "current_latitude": 37.7749,
            "current_longitude": -122.4194,
        }
        fields.update(overrides)
        return Mechanic.objects.create(user=user, **fields)

    return _make


@pytest.fixture
def mechanic(make_mechanic):
    return make_mechanic()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def customer_client(customer):
    client = APIClient()
    client.force_authenticate(user=customer)
    return client


@pytest.fixture
def mechanic_client(mechanic):
    client = APIClient()
    client.force_authenticate(user=mechanic.user)
    return client


def money(value):
    return Decimal(value)
