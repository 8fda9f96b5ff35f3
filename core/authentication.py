"""
Authentication helpers shared by the HTTP API and the websocket layer.

Browsers carry the JWT pair in HttpOnly cookies; websocket clients send a
short-lived access token instead (see core.middleware). Login is
passwordless: a one-time code is mailed and kept in the cache until it is
used or expires.
"""
import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.tokens import RefreshToken

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access"
REFRESH_COOKIE = "refresh"

COOKIE_OPTS = {
    "httponly": True,
    "secure": True,
    "samesite": "None",
}

WS_TOKEN_LIFETIME = timedelta(minutes=2)


class CookieJWTAuthentication(JWTAuthentication):
    """Reads the access token from the `access` cookie instead of a header."""

    def authenticate(self, request):
        raw_token = request.COOKIES.get(ACCESS_COOKIE)
        if raw_token is None:
            return None

        try:
            validated_token = self.get_validated_token(raw_token)
            user = self.get_user(validated_token)
        except Exception as e:
            logger.info(f"Rejected access cookie: {e}")
            raise AuthenticationFailed(f"Invalid access token: {e}")

        return (user, validated_token)


# --- Cookies / tokens ---

def _lifetime_seconds(name):
    return int(settings.SIMPLE_JWT[name].total_seconds())


def set_auth_cookies(response, access_value, refresh_value):
    response.set_cookie(ACCESS_COOKIE, access_value, max_age=_lifetime_seconds("ACCESS_TOKEN_LIFETIME"), **COOKIE_OPTS)
    response.set_cookie(REFRESH_COOKIE, refresh_value, max_age=_lifetime_seconds("REFRESH_TOKEN_LIFETIME"), **COOKIE_OPTS)


def clear_auth_cookies(response):
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)


def issue_tokens_for_user(user):
    """Returns (access, refresh) as strings."""
    refresh = RefreshToken.for_user(user)
    return str(refresh.access_token), str(refresh)


def issue_ws_token(user):
    access = RefreshToken.for_user(user).access_token
    access.set_exp(lifetime=WS_TOKEN_LIFETIME)
    return str(access)


# --- One-time login codes ---

def otp_ttl():
    return int(settings.MECHANICNOW.get("OTP_TTL", 140))


def generate_otp():
    """A random 6-digit code as a string."""
    return f"{secrets.randbelow(900000) + 100000}"


def otp_cache_key(user):
    return f"otp_{user.pk}"


def store_otp(user):
    """Creates a fresh code for `user`; returns (cache key, code)."""
    key = otp_cache_key(user)
    otp = generate_otp()
    cache.set(key, otp, timeout=otp_ttl())
    return key, otp


def consume_otp(user, otp):
    """
    True if `otp` is the code issued to `user`. The lookup key is derived
    from the user, never taken from the caller. A matching code is single use.
    """
    key = otp_cache_key(user)
    cached = cache.get(key)
    if cached is None or cached != str(otp):
        return False
    cache.delete(key)
    return True
