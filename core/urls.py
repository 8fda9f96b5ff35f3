from django.urls import path
from .views import CookieTokenRefreshView, MeApiView, GetWsTokenView, ConnectionInfoView

urlpatterns = [
    path("token/refresh/", CookieTokenRefreshView.as_view(), name="token_refresh"),
    path("me/", MeApiView.as_view(), name="me"),
    path("ws-token/", GetWsTokenView.as_view(), name="ws_token"),
    path("connection/", ConnectionInfoView.as_view(), name="connection_info"),
]
