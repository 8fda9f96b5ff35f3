import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


@database_sync_to_async
def get_active_user(user_id):
    user = get_user_model().objects.filter(id=user_id, is_active=True).first()
    return user or AnonymousUser()


def extract_token(scope):
    """Bearer token from the Authorization header, else the `token` query param (short-lived ws-token)."""
    headers = dict(scope.get('headers', []))
    auth_header = headers.get(b'authorization', b'').decode('utf-8')
    if auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1]

    query_params = parse_qs(scope.get("query_string", b"").decode())
    return query_params.get("token", [None])[0]


class JWTAuthHeaderMiddleware(BaseMiddleware):
    """
    Resolves `scope['user']` from a SimpleJWT access token. Anything else,
    refresh tokens included, leaves the connection anonymous and the
    consumer closes it.
    """

    async def __call__(self, scope, receive, send):
        scope['user'] = AnonymousUser()

        token = extract_token(scope)
        if token:
            try:
                access = AccessToken(token)
                scope['user'] = await get_active_user(access.get("user_id"))
            except TokenError as e:
                logger.warning(f"[WS-AUTH] Rejected token: {e}")

        return await super().__call__(scope, receive, send)
