import os
import django
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'MechanicNow.settings')
# Apps must be loaded before the consumers and middleware import models.
django.setup()

from channels.routing import ProtocolTypeRouter, URLRouter
import jobs.routing
from core.middleware import JWTAuthHeaderMiddleware

application = ProtocolTypeRouter({
    "http": get_asgi_application(),
    "websocket": JWTAuthHeaderMiddleware(
        URLRouter(
            jobs.routing.websocket_urlpatterns
        )
    ),
})
