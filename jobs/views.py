from rest_framework import status
from rest_framework.permissions import IsAuthenticated, AllowAny
from core.authentication import CookieJWTAuthentication
from rest_framework.response import Response
from rest_framework.views import APIView

from django.db import transaction, IntegrityError
from django.db.models import Avg
from django.utils.decorators import method_decorator

from core.cache import cache_per_user
from core.gateways import PaymentGatewayError, get_gateway
from users.models import Mechanic, Review
from users.serializers import ReviewSerializer

from . import chat, lifecycle
from .catalog import all_services
from .dashboard import get_dashboard_data
from .models import JobRequest
from .pricing import compute_price_breakdown
from .ranking import rank_mechanics
from .serializers import (
    ChatMessageInputSerializer,
    ChatMessageSerializer,
    CompleteJobSerializer,
    CreateJobRequestSerializer,
    CreatePaymentIntentSerializer,
    JobRequestSerializer,
    LocationSerializer,
    MatchMechanicsSerializer,
    RankedMechanicSerializer,
    SubmitReviewSerializer,
)
import logging
logger = logging.getLogger(__name__)


ERROR_STATUS = (
    (lifecycle.JobValidationError, status.HTTP_400_BAD_REQUEST),
    (lifecycle.JobNotFoundError, status.HTTP_404_NOT_FOUND),
    (lifecycle.NotAssignedMechanicError, status.HTTP_403_FORBIDDEN),
    (lifecycle.InvalidTransitionError, status.HTTP_400_BAD_REQUEST),
    (lifecycle.JobUnavailableError, status.HTTP_409_CONFLICT),
    (lifecycle.PaymentCaptureError, status.HTTP_502_BAD_GATEWAY),
)


def lifecycle_error_response(exc):
    for error_class, http_status in ERROR_STATUS:
        if isinstance(exc, error_class):
            return Response({"error": str(exc)}, status=http_status)
    logger.error(f"Unmapped lifecycle error: {exc}", exc_info=True)
    return Response({"error": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class MechanicOnlyMixin:
    """Resolves request.user to its Mechanic profile, or None."""

    def get_mechanic(self, request):
        try:
            return Mechanic.objects.select_related('user').get(user_id=request.user.id)
        except Mechanic.DoesNotExist:
            logger.warning(f"User {request.user.id} is not a registered mechanic")
            return None

    def not_a_mechanic(self):
        return Response({"error": "Mechanic profile not found."}, status=status.HTTP_403_FORBIDDEN)


# --- Booking ---

@method_decorator(cache_per_user(), name='get')
class ServicesView(APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"services": [item.to_dict() for item in all_services()]}, status=status.HTTP_200_OK)


class MatchMechanicsView(APIView):
    """Nearby mechanics for a booking, best match first."""
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = MatchMechanicsSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        mechanics = get_gateway().mechanic.get_nearby_mechanics(data['latitude'], data['longitude'])
        ranked = rank_mechanics(mechanics, [item.name for item in data['service_ids']])
        logger.info(f"Matched {len(ranked)} mechanics for user {request.user.id}")
        return Response({"mechanics": RankedMechanicSerializer(ranked, many=True).data}, status=status.HTTP_200_OK)


class CreatePaymentIntentView(APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CreatePaymentIntentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        breakdown = compute_price_breakdown(serializer.validated_data['service_ids'])
        mechanic = None
        mechanic_id = serializer.validated_data.get('mechanic_id')
        if mechanic_id:
            mechanic = Mechanic.objects.filter(pk=mechanic_id).first()

        try:
            intent = get_gateway().payment.create_payment_intent(breakdown.total, mechanic=mechanic)
        except PaymentGatewayError as e:
            return Response({"error": str(e)}, status=status.HTTP_502_BAD_GATEWAY)

        return Response({
            "client_secret": intent["client_secret"],
            "payment_intent_id": intent["id"],
            "price_breakdown": breakdown.to_dict(),
        }, status=status.HTTP_200_OK)


class CreateJobRequestView(APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CreateJobRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            job = lifecycle.create_job_request(
                request.user,
                data['vehicle'],
                data['service_ids'],
                location=data.get('location'),
                latitude=data.get('latitude'),
                longitude=data.get('longitude'),
                requested_mechanic=data.get('mechanic_id'),
                payment_intent_id=data.get('payment_intent_id'),
            )
        except lifecycle.JobLifecycleError as e:
            return lifecycle_error_response(e)

        return Response({
            "message": "Request sent successfully.",
            "request_id": job.id,
            "job": JobRequestSerializer(job).data,
        }, status=status.HTTP_201_CREATED)


class JobRequestDetailView(APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request, job_id):
        try:
            job = get_gateway().mechanic.get_job_request(job_id)
        except JobRequest.DoesNotExist:
            return Response({"error": "Job request not found."}, status=status.HTTP_404_NOT_FOUND)

        if job.customer_id != request.user.id and not request.user.is_mechanic:
            return Response({"error": "Job request not found."}, status=status.HTTP_404_NOT_FOUND)
        return Response(JobRequestSerializer(job).data, status=status.HTTP_200_OK)


# --- Mechanic transitions ---

class JobTransitionView(MechanicOnlyMixin, APIView):
    """Base for the one-step mechanic actions on a job."""
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]
    success_message = ""

    def perform(self, request, job_id, mechanic):
        raise NotImplementedError

    def post(self, request, job_id):
        mechanic = self.get_mechanic(request)
        if mechanic is None:
            return self.not_a_mechanic()
        try:
            job = self.perform(request, job_id, mechanic)
        except lifecycle.JobLifecycleError as e:
            return lifecycle_error_response(e)

        payload = {"message": self.success_message}
        if job is not None:
            payload["job"] = JobRequestSerializer(job).data
        return Response(payload, status=status.HTTP_200_OK)


class AcceptJobRequestView(JobTransitionView):
    success_message = "Job accepted."

    def perform(self, request, job_id, mechanic):
        return lifecycle.accept_job(job_id, mechanic)


class ArrivedJobRequestView(JobTransitionView):
    success_message = "Arrival confirmed."

    def perform(self, request, job_id, mechanic):
        return lifecycle.mark_arrived(job_id, mechanic)


class StartJobRequestView(JobTransitionView):
    success_message = "Job started."

    def perform(self, request, job_id, mechanic):
        return lifecycle.start_job(job_id, mechanic)


class DeclineJobRequestView(JobTransitionView):
    success_message = "Job declined."

    def perform(self, request, job_id, mechanic):
        lifecycle.decline_job(job_id, mechanic)
        return None


class CompleteJobRequestView(JobTransitionView):
    success_message = "Job completed."

    def post(self, request, job_id):
        serializer = CompleteJobSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        self.completion = serializer.validated_data
        return super().post(request, job_id)

    def perform(self, request, job_id, mechanic):
        details = lifecycle.CompletionDetails(
            description=self.completion['description'],
            parts=self.completion['parts'],
            parts_cost=self.completion['parts_cost'],
            notes=self.completion['notes'],
        )
        return lifecycle.complete_job(job_id, mechanic, details, self.completion['settlement_method'])


class UpdateLocationView(JobTransitionView):
    success_message = "Location updated."

    def post(self, request, job_id):
        serializer = LocationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        self.location = serializer.validated_data
        return super().post(request, job_id)

    def perform(self, request, job_id, mechanic):
        return lifecycle.update_driver_location(
            job_id, mechanic, self.location['latitude'], self.location['longitude']
        )


# --- Mechanic dashboard ---

class MechanicDashboardView(MechanicOnlyMixin, APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        mechanic = self.get_mechanic(request)
        if mechanic is None:
            return self.not_a_mechanic()
        return Response(get_dashboard_data(mechanic), status=status.HTTP_200_OK)


# View to update the status of a mechanic.
class UpdateMechanicStatusView(MechanicOnlyMixin, APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def put(self, request):
        is_online = request.data.get('is_online')
        if not isinstance(is_online, bool):
            return Response({"error": "is_online (true/false) is required."}, status=status.HTTP_400_BAD_REQUEST)

        mechanic = self.get_mechanic(request)
        if mechanic is None:
            return self.not_a_mechanic()

        lifecycle.set_online(mechanic, is_online)
        return Response({
            "message": "Mechanic status updated successfully.",
            "availability": mechanic.availability,
        }, status=status.HTTP_200_OK)


class CashOutView(MechanicOnlyMixin, APIView):
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        mechanic = self.get_mechanic(request)
        if mechanic is None:
            return self.not_a_mechanic()

        try:
            result, amount = lifecycle.cash_out(mechanic)
        except lifecycle.JobLifecycleError as e:
            return lifecycle_error_response(e)
        except PaymentGatewayError as e:
            return Response({"error": str(e)}, status=status.HTTP_502_BAD_GATEWAY)

        return Response({
            "message": f"Transferred ${amount} to your bank.",
            "payout_id": result.get("payout_id"),
            "earnings": {key: str(value) for key, value in mechanic.earnings.items()},
        }, status=status.HTTP_200_OK)


class SyncActiveJobView(APIView):
    """
    Returns the caller's active job, if any: the assigned job for a mechanic,
    the most recent unfinished booking for a customer.
    """
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        active_statuses = [
            JobRequest.Status.ACCEPTED, JobRequest.Status.ARRIVED, JobRequest.Status.IN_PROGRESS,
        ]
        mechanic = Mechanic.objects.filter(user_id=request.user.id).first()
        if mechanic is not None:
            job = JobRequest.objects.filter(mechanic=mechanic, status__in=active_statuses).first()
        else:
            job = JobRequest.objects.filter(
                customer=request.user, status__in=active_statuses + [JobRequest.Status.NEW]
            ).first()

        if job is None:
            return Response({"active_job": None}, status=status.HTTP_200_OK)
        return Response({"active_job": JobRequestSerializer(job).data}, status=status.HTTP_200_OK)


class SubmitReviewView(APIView):
    """Customer review of the mechanic who completed the job. One per job."""
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request, job_id):
        serializer = SubmitReviewSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        job = JobRequest.objects.filter(pk=job_id, customer=request.user).select_related('mechanic').first()
        if job is None:
            return Response({"error": "Job request not found."}, status=status.HTTP_404_NOT_FOUND)
        if job.status != JobRequest.Status.COMPLETED or job.mechanic is None:
            return Response({"error": "Only completed jobs can be reviewed."}, status=status.HTTP_400_BAD_REQUEST)

        try:
            with transaction.atomic():
                review = Review.objects.create(
                    mechanic=job.mechanic,
                    job=job,
                    author=request.user,
                    rating=serializer.validated_data['rating'],
                    text=serializer.validated_data['text'],
                )
                average = Review.objects.filter(mechanic=job.mechanic).aggregate(avg=Avg('rating'))['avg']
                Mechanic.objects.filter(pk=job.mechanic.pk).update(rating=round(average, 2))
        except IntegrityError:
            return Response({"error": "This job has already been reviewed."}, status=status.HTTP_409_CONFLICT)

        logger.info(f"Review {review.id} for mechanic {job.mechanic.pk} saved (job {job.id})")
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)


class JobChatView(APIView):
    """Read or append to a job's chat. Only the customer and the assigned mechanic get in."""
    authentication_classes = [CookieJWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request, job_id):
        try:
            messages = chat.list_chat_messages(job_id, request.user)
        except lifecycle.JobLifecycleError as e:
            return lifecycle_error_response(e)
        return Response({"messages": ChatMessageSerializer(messages, many=True).data}, status=status.HTTP_200_OK)

    def post(self, request, job_id):
        serializer = ChatMessageInputSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        try:
            message = chat.post_chat_message(job_id, request.user, serializer.validated_data['text'])
        except lifecycle.JobLifecycleError as e:
            return lifecycle_error_response(e)
        return Response(ChatMessageSerializer(message).data, status=status.HTTP_201_CREATED)
