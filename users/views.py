from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from rest_framework_simplejwt.tokens import RefreshToken

from core.authentication import (
    REFRESH_COOKIE,
    CookieJWTAuthentication,
    clear_auth_cookies,
    consume_otp,
    otp_cache_key,
    issue_tokens_for_user,
    set_auth_cookies,
    store_otp,
)
from core.cache import invalidate_user_cache

from .models import CustomUser, Mechanic

import logging

from .serializers import (
    UserSerializer,
    MechanicSerializer,
    SetUsersDetailsSerializer,
    RegisterMechanicSerializer,
)
from .tasks import send_login_code, send_mechanic_welcome_email

logger = logging.getLogger(__name__)


def _send_otp(user, is_mechanic):
    key, otp = store_otp(user)
    try:
        send_login_code.delay(user.email, otp, is_mechanic=bool(is_mechanic))
    except Exception as task_error:
        logger.warning("OTP async task enqueue failed for %s: %s", user.email, task_error)
    return key


# -------------------------
# Views
# -------------------------

class OtpVerificationView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        key = request.data.get("key")
        otp = request.data.get("otp")
        user_id = request.data.get("id")

        if not key or not otp:
            return Response({"error": "Key and OTP are required."}, status=status.HTTP_400_BAD_REQUEST)

        # The code must belong to the account being logged in.
        user = CustomUser.objects.filter(id=user_id).first() if str(user_id).isdigit() else None
        if user is None or key != otp_cache_key(user) or not consume_otp(user, otp):
            logger.warning(f"OTP verification failed for user id {user_id}")
            return Response({"error": "Invalid key or OTP."}, status=status.HTTP_401_UNAUTHORIZED)

        if not user.is_active:
            user.is_active = True
            user.save(update_fields=['is_active'])

        access_token, refresh_token = issue_tokens_for_user(user)

        response = Response({
            "message": "OTP verified successfully.",
            "user": UserSerializer(user).data,
        }, status=status.HTTP_200_OK)
        set_auth_cookies(response, access_token, refresh_token)
        return response


class Login_SignUpView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        email = request.data.get("email")
        is_mechanic = request.data.get("is_mechanic", False)
        if not email:
            return Response({"error": "Email is required"}, status=status.HTTP_400_BAD_REQUEST)

        CustomUser.objects.filter(email=email, is_active=False).delete()

        user, created = CustomUser.objects.get_or_create(
            email=email,
            defaults={"is_active": False},
        )
        status_message = "New User" if created else "Existing User"
        key = _send_otp(user, is_mechanic)
        return Response({"key": key, "id": user.id, "status": status_message}, status=status.HTTP_200_OK)


class LogoutView(APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        refresh_token = request.COOKIES.get(REFRESH_COOKIE)
        if refresh_token:
            try:
                token = RefreshToken(refresh_token)
                token.blacklist()
            except Exception as e:
                logger.warning("Invalid refresh token during logout for user %s: %s", getattr(request.user, "email", "N/A"), str(e))

        response = Response({"message": "Logged out successfully."}, status=status.HTTP_200_OK)
        clear_auth_cookies(response)
        invalidate_user_cache(request.user)
        return response


class SetUsersDetail(APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        # `partial=True` allows for updating only a subset of fields.
        serializer = SetUsersDetailsSerializer(request.user, data=request.data, partial=True)

        if serializer.is_valid():
            serializer.save()
            invalidate_user_cache(request.user)
            return Response(serializer.data, status=status.HTTP_200_OK)

        return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)


class ResendOtpView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        user_id = request.data.get("id")
        if not user_id:
            return Response({"error": "ID is required"}, status=status.HTTP_400_BAD_REQUEST)

        is_mechanic = request.data.get("is_mechanic", False)

        user = CustomUser.objects.filter(id=user_id, is_active=False).first()
        if not user:
            return Response({"error": "User not found or is already active."}, status=status.HTTP_404_NOT_FOUND)

        new_key = _send_otp(user, is_mechanic)
        return Response({"key": new_key, "id": user.id}, status=status.HTTP_200_OK)



# ---------------------------Mechanic Views---------------------------
class RegisterMechanicView(APIView):
    """
    Creates or updates the caller's mechanic profile. New profiles start
    OFFLINE with a 5.0 rating and get the partner welcome email.
    """
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        user = request.user
        serializer = RegisterMechanicSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        mechanic, created = Mechanic.objects.update_or_create(
            user=user,
            defaults=serializer.validated_data,
        )
        if not user.is_mechanic:
            user.is_mechanic = True
            user.save(update_fields=['is_mechanic'])

        if created:
            logger.info(f"Registered mechanic profile {mechanic.id} for {user.email}")
            try:
                send_mechanic_welcome_email.delay({"email": user.email, "first_name": user.first_name})
            except Exception as e:
                logger.warning(f"Failed to enqueue welcome email for {user.email}: {e}")

        status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        message = "Mechanic profile created successfully." if created else "Mechanic profile updated successfully."
        return Response({
            "message": message,
            "mechanic": MechanicSerializer(mechanic).data,
        }, status=status_code)
