from rest_framework import serializers
from .models import Mechanic, CustomUser, Review



# This serializer is used to expose user information in other serializers and in login/signup views.
class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for the CustomUser model.
    It exposes public-facing user information for use in other serializers.
    """
    class Meta:
        model = CustomUser
        fields = ['id', 'email', 'first_name', 'last_name', 'mobile_number', 'profile_pic', 'is_mechanic']




# This serializer is used to expose mechanic information in other serializers and views.
class MechanicSerializer(serializers.ModelSerializer):
    """
    Serializer for the Mechanic model.
    It includes nested data from the UserSerializer to provide complete mechanic details
    in a single API response, rather than just a user ID.
    """
    user = UserSerializer(read_only=True)
    name = serializers.CharField(read_only=True)
    review_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Mechanic
        fields = [
            'id', 'user', 'name', 'bio', 'years_experience', 'specialties', 'certifications',
            'rating', 'review_count', 'jobs_completed', 'availability',
            'current_latitude', 'current_longitude', 'is_verified',
        ]


# This set the user details
class SetUsersDetailsSerializer(serializers.ModelSerializer):
    """
    Serializer for updating user details.
    Only the fields a user may edit on their own account are writable.
    """
    class Meta:
        model = CustomUser
        fields = ['first_name', 'last_name', 'mobile_number', 'profile_pic']
        read_only_fields = ['id', 'email', 'is_mechanic']



# This serializer registers the mechanic profile
class RegisterMechanicSerializer(serializers.ModelSerializer):
    specialties = serializers.ListField(child=serializers.CharField(max_length=100), allow_empty=True, required=False)
    certifications = serializers.ListField(child=serializers.CharField(max_length=100), allow_empty=True, required=False)

    class Meta:
        model = Mechanic
        fields = ['bio', 'years_experience', 'specialties', 'certifications']


class ReviewSerializer(serializers.ModelSerializer):
    author_name = serializers.SerializerMethodField()

    class Meta:
        model = Review
        fields = ['id', 'mechanic', 'job', 'author_name', 'rating', 'text', 'created_at']
        read_only_fields = ['id', 'mechanic', 'job', 'author_name', 'created_at']

    def get_author_name(self, obj):
        return obj.author.get_full_name() or obj.author.email
