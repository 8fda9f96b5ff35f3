"""
Backend selection.

The MOCK or REAL gateway is chosen once from settings.MECHANICNOW["BACKEND_MODE"]
and shared by every caller through get_gateway().
"""
import logging

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from .base import Gateway, PaymentGatewayError

logger = logging.getLogger(__name__)

GATEWAY_CLASSES = {
    "MOCK": "core.gateways.mock.MockGateway",
    "REAL": "core.gateways.real.RealGateway",
}

_gateway = None


def get_gateway() -> Gateway:
    global _gateway
    if _gateway is None:
        mode = str(settings.MECHANICNOW.get("BACKEND_MODE", "MOCK")).upper()
        try:
            gateway_path = GATEWAY_CLASSES[mode]
        except KeyError:
            raise ImproperlyConfigured(f"Unknown MECHANICNOW BACKEND_MODE: {mode!r}")
        _gateway = import_string(gateway_path)()
        if mode == "MOCK":
            logger.warning("Running in MOCK MODE: payments and notifications are only logged.")
        else:
            logger.info(f"Connected backend: {_gateway.provider}")
    return _gateway


def set_gateway(gateway):
    global _gateway
    _gateway = gateway


def reset_gateway():
    set_gateway(None)


__all__ = ["Gateway", "PaymentGatewayError", "get_gateway", "set_gateway", "reset_gateway"]
