from django.urls import path
from .views import Login_SignUpView, OtpVerificationView, LogoutView, SetUsersDetail, ResendOtpView, RegisterMechanicView


urlpatterns = [
    path('Login_SignUp/', Login_SignUpView.as_view(), name='login'),
    path('otp-verify/', OtpVerificationView.as_view(), name='otp-verify'),
    path('logout/', LogoutView.as_view(), name='logout'),
    path('SetUsersDetail/', SetUsersDetail.as_view(), name='SetUsersDetail'),
    path('resend-otp/', ResendOtpView.as_view(), name='resend-otp'),
    path('RegisterMechanic/', RegisterMechanicView.as_view(), name='RegisterMechanic'),
]
