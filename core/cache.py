"""
Per-user response caching for read-heavy GET endpoints.

Each cached response is stored under a key derived from the owner (a user
pk, or "public" for anonymous callers) and the request path. Keys written
for a user are tracked in a registry so they can all be dropped at once
when that user's profile, availability or earnings change.
"""
import functools
import logging
from hashlib import md5

from django.conf import settings
from django.core.cache import cache
from rest_framework.response import Response

logger = logging.getLogger(__name__)

VIEW_CACHE_PREFIX = "mechanicnow:view"
REGISTRY_PREFIX = "mechanicnow:view-keys"


def default_ttl():
    return int(settings.MECHANICNOW.get("VIEW_CACHE_TTL", 300))


def view_cache_key(owner, path):
    base = f"{VIEW_CACHE_PREFIX}:{path}:{owner}"
    return md5(base.encode("utf-8")).hexdigest()


def _registry_key(user_id):
    return f"{REGISTRY_PREFIX}:{user_id}"


def _owner(request):
    # Anonymous callers only ever reach public endpoints, so they share one entry.
    return request.user.pk if request.user.is_authenticated else "public"


def _remember(user_id, key, timeout):
    registry_key = _registry_key(user_id)
    keys = cache.get(registry_key) or set()
    keys.add(key)
    cache.set(registry_key, keys, timeout + 60)


def cache_per_user(timeout=None):
    """
    Caches the 2xx payload of a DRF view method per caller.
    Use with `method_decorator(cache_per_user(), name='get')`.
    """
    def decorator(view_func):
        @functools.wraps(view_func)
        def _wrapped_view(request, *args, **kwargs):
            ttl = default_ttl() if timeout is None else timeout
            owner = _owner(request)
            key = view_cache_key(owner, request.path)

            cached = cache.get(key)
            if cached is not None:
                return Response(data=cached['data'], status=cached['status'])

            response = view_func(request, *args, **kwargs)
            if 200 <= response.status_code < 300:
                cache.set(key, {'data': response.data, 'status': response.status_code}, ttl)
                if owner != "public":
                    _remember(owner, key, ttl)
            return response

        return _wrapped_view
    return decorator


def invalidate_view(user, path):
    """Drops one cached endpoint for a user, e.g. after a signal fires."""
    cache.delete(view_cache_key(user.pk, path))


def invalidate_user_cache(user):
    """Drops every cached response recorded for this user."""
    if user is None or not user.is_authenticated:
        return
    registry_key = _registry_key(user.pk)
    keys = cache.get(registry_key) or set()
    cache.delete_many(list(keys))
    cache.delete(registry_key)
    logger.debug(f"Dropped {len(keys)} cached responses for user {user.pk}")
