from rest_framework import serializers
from users.models import Mechanic
from jobs.models import JobRequest


class JobHistorySerializer(serializers.ModelSerializer):
    """
    Compact job record for the customer and mechanic history screens.
    """
    mechanic_name = serializers.CharField(source='mechanic.name', read_only=True, default=None)
    has_review = serializers.SerializerMethodField()

    class Meta:
        model = JobRequest
        fields = [
            'id', 'status', 'vehicle', 'issue', 'location', 'mechanic_name',
            'total', 'payout', 'parts_cost', 'payment_status', 'settlement_method',
            'payout_summary', 'has_review', 'created_at', 'updated_at'
        ]

    def get_has_review(self, obj):
        return hasattr(obj, 'review')



class MechanicProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for the Mechanic model for the mechanic's own profile view.
    """
    email = serializers.EmailField(source='user.email', read_only=True)
    first_name = serializers.CharField(source='user.first_name', read_only=True)
    last_name = serializers.CharField(source='user.last_name', read_only=True)
    profile_pic = serializers.CharField(source='user.profile_pic', read_only=True)
    mobile_number = serializers.CharField(source='user.mobile_number', read_only=True, default=None)
    review_count = serializers.IntegerField(read_only=True)
    earnings = serializers.SerializerMethodField()

    class Meta:
        model = Mechanic
        fields = [
            'id', 'email', 'first_name', 'last_name', 'profile_pic', 'mobile_number',
            'bio', 'years_experience', 'specialties', 'certifications',
            'rating', 'review_count', 'jobs_completed', 'availability', 'is_verified',
            'stripe_connected', 'earnings'
        ]

    def get_earnings(self, obj):
        return {key: str(value) for key, value in obj.earnings.items()}
