from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from core.authentication import CookieJWTAuthentication
from rest_framework.response import Response
from rest_framework.views import APIView
from django.utils.decorators import method_decorator

from core.cache import cache_per_user, invalidate_user_cache
from users.models import Mechanic
from users.serializers import UserSerializer, SetUsersDetailsSerializer
from jobs.models import JobRequest
from .serializers import JobHistorySerializer, MechanicProfileSerializer


@method_decorator(cache_per_user(), name='get')
class UserProfileView(APIView):
    """
    API endpoint to view the user profile.
    """
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        serializer = UserSerializer(request.user)
        return Response(serializer.data, status=status.HTTP_200_OK)


class EditUserProfileView(APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        """
        Update the authenticated user's profile.
        """
        serializer = SetUsersDetailsSerializer(request.user, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            invalidate_user_cache(request.user)
            return Response(serializer.data, status=status.HTTP_200_OK)
        return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)


class UserJobHistoryView(APIView):
    """
    API endpoint to view the customer's booking history.
    """
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        jobs = JobRequest.objects.filter(customer=request.user).select_related('mechanic__user', 'review')
        serializer = JobHistorySerializer(jobs, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)



@method_decorator(cache_per_user(), name='get')
class MechanicProfileView(APIView):
    """
    API endpoint for a mechanic to view their own profile.
    """
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        try:
            mechanic = request.user.mechanic_profile
        except Mechanic.DoesNotExist:
            return Response({"error": "Mechanic profile not found."}, status=status.HTTP_404_NOT_FOUND)
        serializer = MechanicProfileSerializer(mechanic)
        return Response(serializer.data, status=status.HTTP_200_OK)


class MechanicJobHistoryView(APIView):
    """
    Completed jobs and the stored earnings buckets for the calling mechanic.
    """
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        try:
            mechanic = request.user.mechanic_profile
        except Mechanic.DoesNotExist:
            return Response({"error": "Mechanic profile not found."}, status=status.HTTP_404_NOT_FOUND)

        completed_jobs = JobRequest.objects.filter(
            mechanic=mechanic,
            status=JobRequest.Status.COMPLETED
        ).select_related('mechanic__user', 'review')

        response_data = {
            'statistics': {
                'earnings': {key: str(value) for key, value in mechanic.earnings.items()},
                'total_jobs': mechanic.jobs_completed,
                'rating': mechanic.rating,
            },
            'job_history': JobHistorySerializer(completed_jobs, many=True).data
        }
        return Response(response_data, status=status.HTTP_200_OK)
