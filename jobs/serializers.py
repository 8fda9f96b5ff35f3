from decimal import Decimal

from rest_framework import serializers

from .catalog import get_service
from .models import ChatMessage, JobRequest
from users.models import Mechanic
from users.serializers import MechanicSerializer


class JobRequestSerializer(serializers.ModelSerializer):
    """
    Full view of a job, shared by the REST endpoints, the dashboard and the
    websocket job feed.
    """
    # Fields from the related user (customer)
    customer_name = serializers.SerializerMethodField()
    customer_phone = serializers.CharField(source='customer.mobile_number', read_only=True, default=None)
    mechanic = serializers.SerializerMethodField()
    price_breakdown = serializers.SerializerMethodField()

    class Meta:
        model = JobRequest
        fields = [
            'id', 'status', 'customer', 'customer_name', 'customer_phone', 'mechanic',
            'requested_mechanic', 'vehicle', 'issue', 'services',
            'latitude', 'longitude', 'location', 'driver_latitude', 'driver_longitude',
            'payout', 'urgency', 'price_breakdown', 'payment_status', 'payment_intent_id',
            'completion_description', 'parts_used', 'parts_cost', 'completion_notes',
            'settlement_method', 'payout_summary', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_customer_name(self, obj):
        return obj.customer.get_full_name() or obj.customer.email

    def get_mechanic(self, obj):
        if obj.mechanic_id is None:
            return None
        return MechanicDataForUserSerializer(obj.mechanic).data

    def get_price_breakdown(self, obj):
        return {key: str(value) for key, value in obj.price_breakdown.items()}


class MechanicDataForUserSerializer(serializers.ModelSerializer):
    """
    Provides the specific mechanic details a customer needs to see.
    """
    name = serializers.CharField(read_only=True)
    phone_number = serializers.CharField(source='user.mobile_number', read_only=True, default=None)
    profile_pic = serializers.CharField(source='user.profile_pic', read_only=True)

    class Meta:
        model = Mechanic
        fields = [
            'id', 'name', 'phone_number', 'rating', 'availability',
            'current_latitude', 'current_longitude', 'profile_pic'
        ]


class RankedMechanicSerializer(serializers.Serializer):
    """Serializes a ranking.RankedMechanic: mechanic card plus score and reason."""
    mechanic = MechanicSerializer(read_only=True)
    score = serializers.FloatField(read_only=True)
    match_reason = serializers.CharField(read_only=True)


class ServiceIdsField(serializers.ListField):
    child = serializers.CharField(max_length=20)

    def to_internal_value(self, data):
        ids = super().to_internal_value(data)
        items = []
        for service_id in ids:
            try:
                items.append(get_service(service_id))
            except KeyError:
                raise serializers.ValidationError(f"Unknown service: {service_id}")
        return items


class MatchMechanicsSerializer(serializers.Serializer):
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    service_ids = ServiceIdsField(allow_empty=True, required=False, default=list)


class CreateJobRequestSerializer(serializers.Serializer):
    vehicle = serializers.CharField(max_length=255)
    service_ids = ServiceIdsField(allow_empty=False)
    latitude = serializers.FloatField(required=False, allow_null=True)
    longitude = serializers.FloatField(required=False, allow_null=True)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    mechanic_id = serializers.IntegerField(required=False, allow_null=True)
    payment_intent_id = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)

    def validate_mechanic_id(self, value):
        if value is None:
            return None
        try:
            return Mechanic.objects.select_related('user').get(pk=value)
        except Mechanic.DoesNotExist:
            raise serializers.ValidationError("Mechanic not found.")


class CreatePaymentIntentSerializer(serializers.Serializer):
    service_ids = ServiceIdsField(allow_empty=False)
    mechanic_id = serializers.IntegerField(required=False, allow_null=True)


class CompleteJobSerializer(serializers.Serializer):
    # Description presence is enforced by the lifecycle so the error reads the same everywhere.
    description = serializers.CharField(allow_blank=True, required=False, default="")
    parts = serializers.CharField(allow_blank=True, required=False, default="")
    parts_cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"), required=False, default=Decimal("0.00"))
    notes = serializers.CharField(allow_blank=True, required=False, default="")
    settlement_method = serializers.ChoiceField(choices=JobRequest.SettlementMethod.choices)


class LocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)


class SubmitReviewSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    text = serializers.CharField(allow_blank=True, required=False, default="")


class ChatMessageSerializer(serializers.ModelSerializer):
    sender_name = serializers.SerializerMethodField()

    class Meta:
        model = ChatMessage
        fields = ['id', 'job', 'sender_role', 'sender_name', 'text', 'created_at']
        read_only_fields = fields

    def get_sender_name(self, obj):
        if obj.sender is None:
            return None
        return obj.sender.get_full_name() or obj.sender.email


class ChatMessageInputSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=1000, trim_whitespace=True)
