from django.urls import path
from .views import UserProfileView, UserJobHistoryView, EditUserProfileView, MechanicProfileView, MechanicJobHistoryView



urlpatterns = [
    path('UserProfile/', UserProfileView.as_view(), name='user-profile'),
    path('EditUserProfile/', EditUserProfileView.as_view(), name='edit-user-profile'),
    path('UserHistory/', UserJobHistoryView.as_view(), name='user-history'),
    path('MechanicProfile/', MechanicProfileView.as_view(), name='mechanic-profile'),
    path('MechanicHistory/', MechanicJobHistoryView.as_view(), name='mechanic-job-history'),
]
