from django.urls import path
from . import views

urlpatterns = [
    path('Services/', views.ServicesView.as_view(), name='services'),
    path('MatchMechanics/', views.MatchMechanicsView.as_view(), name='match_mechanics'),
    path('CreatePaymentIntent/', views.CreatePaymentIntentView.as_view(), name='create_payment_intent'),
    path('CreateJobRequest/', views.CreateJobRequestView.as_view(), name='create_job_request'),
    path('JobRequest/<int:job_id>/', views.JobRequestDetailView.as_view(), name='job_request_detail'),
    path('AcceptJobRequest/<int:job_id>/', views.AcceptJobRequestView.as_view(), name='accept_job_request'),
    path('ArrivedJobRequest/<int:job_id>/', views.ArrivedJobRequestView.as_view(), name='arrived_job_request'),
    path('StartJobRequest/<int:job_id>/', views.StartJobRequestView.as_view(), name='start_job_request'),
    path('CompleteJobRequest/<int:job_id>/', views.CompleteJobRequestView.as_view(), name='complete_job_request'),
    path('DeclineJobRequest/<int:job_id>/', views.DeclineJobRequestView.as_view(), name='decline_job_request'),
    path('UpdateLocation/<int:job_id>/', views.UpdateLocationView.as_view(), name='update_location'),
    path('MechanicDashboard/', views.MechanicDashboardView.as_view(), name='mechanic_dashboard'),
    path('UpdateMechanicStatus/', views.UpdateMechanicStatusView.as_view(), name='update_mechanic_status'),
    path('CashOut/', views.CashOutView.as_view(), name='cash_out'),
    path('SyncActiveJob/', views.SyncActiveJobView.as_view(), name='sync_active_job'),
    path('SubmitReview/<int:job_id>/', views.SubmitReviewView.as_view(), name='submit_review'),
    path('JobChat/<int:job_id>/', views.JobChatView.as_view(), name='job_chat'),
]
