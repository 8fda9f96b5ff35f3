import logging

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from core.authentication import (
    REFRESH_COOKIE,
    CookieJWTAuthentication,
    issue_tokens_for_user,
    issue_ws_token,
    set_auth_cookies,
)
from core.gateways import get_gateway

logger = logging.getLogger(__name__)

HTTP_401 = status.HTTP_401_UNAUTHORIZED


class CookieTokenRefreshView(APIView):
    """
    Rotates the cookie token pair. The presented refresh token is
    blacklisted and a new pair is set on the response.
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        raw_refresh = request.COOKIES.get(REFRESH_COOKIE)
        if not raw_refresh:
            logger.warning("Refresh token missing in cookies")
            return Response({"error": "Refresh token missing"}, status=HTTP_401)

        try:
            refresh = RefreshToken(raw_refresh)
            user = get_user_model().objects.get(id=refresh.get("user_id"))
        except (TokenError, get_user_model().DoesNotExist) as e:
            logger.warning(f"Refresh rejected: {e}")
            return Response({"error": "Invalid or expired refresh token"}, status=HTTP_401)

        try:
            refresh.blacklist()
        except TokenError:
            logger.debug(f"Refresh token for user {user.pk} was already blacklisted")

        access_token, refresh_token = issue_tokens_for_user(user)
        logger.info(f"Rotated tokens for user {user.pk}")

        response = Response({"message": "Tokens refreshed successfully"}, status=status.HTTP_200_OK)
        set_auth_cookies(response, access_token, refresh_token)
        return response


class MeApiView(APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        return Response({
            "id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "is_mechanic": user.is_mechanic,
        }, status=status.HTTP_200_OK)


class GetWsTokenView(APIView):
    """
    Returns a two-minute access token the app passes as `?token=` when it
    opens the job tracking websocket.
    """
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ws_token = issue_ws_token(request.user)
        logger.info(f"WebSocket token issued for user {request.user.pk}")
        return Response({"ws_token": ws_token}, status=status.HTTP_200_OK)


class ConnectionInfoView(APIView):
    """Which backend this deployment talks to, for the app's status badge."""
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response(get_gateway().connection_info(), status=status.HTTP_200_OK)
