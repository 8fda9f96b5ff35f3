import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from . import chat, lifecycle
from .models import JobRequest
from .serializers import ChatMessageSerializer, LocationSerializer
from .subscriptions import subscribe, subscribe_chat, subscribe_dashboard

# Set up a specific logger for this module
logger = logging.getLogger(__name__)


def parse_job_id(data):
    """The message's job_id as a positive int, or None."""
    try:
        job_id = int(data.get('job_id'))
    except (TypeError, ValueError):
        return None
    return job_id if job_id > 0 else None


class JobTrackingConsumer(AsyncWebsocketConsumer):
    """
    Live job tracking for customers and mechanics.

    A client joins a job room to receive `job_update` messages whenever the
    job changes, and joins a job's chat to receive `chat_update` messages.
    A mechanic can also stream `location_update` messages for the job it is
    working and follow its dashboard feed.
    """

    # --- Connection Management ---

    async def connect(self):
        self.user = self.scope.get("user")
        self.subscriptions = {}
        if self.user is None or not self.user.is_authenticated:
            logger.warning("[WS-CONNECT] Connection rejected: missing or invalid token.")
            await self.close()
            return

        await self.accept()
        logger.info(f"[WS-CONNECT] Accepted connection for user {self.user.id}.")

    async def disconnect(self, close_code):
        for unsubscribe in getattr(self, 'subscriptions', {}).values():
            unsubscribe()
        self.subscriptions = {}
        user_id = getattr(getattr(self, 'user', None), 'id', 'N/A')
        logger.info(f"[WS-DISCONNECT] Disconnected user {user_id}. Code: {close_code}")

    # --- Incoming Message Router ---

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data or "")
        except json.JSONDecodeError:
            logger.error(f"[WS-RECEIVE] Failed to parse JSON from message: {text_data}")
            await self.send_error("Invalid JSON.")
            return
        if not isinstance(data, dict):
            await self.send_error("Messages must be JSON objects.")
            return

        message_type = data.get('type')
        handlers = {
            'join_job_room': self.join_job_room,
            'leave_job_room': self.leave_job_room,
            'location_update': self.handle_location_update,
            'join_dashboard': self.join_dashboard,
            'join_chat': self.join_chat,
            'send_chat_message': self.send_chat_message,
        }
        handler = handlers.get(message_type)
        if handler is None:
            logger.warning(f"[WS-RECEIVE] Unknown message type '{message_type}' from user {self.user.id}.")
            await self.send_error(f"Unknown message type: {message_type}")
            return
        await handler(data)

    async def send_error(self, message):
        await self.send(text_data=json.dumps({'type': 'error', 'error': message}))

    # --- Handlers for Client-Side Events ---

    async def join_job_room(self, data):
        job_id = parse_job_id(data)
        if job_id is None or not await self.can_view_job(job_id):
            await self.send_error("Job not found.")
            return

        key = f"job_{job_id}"
        if key not in self.subscriptions:
            self.subscriptions[key] = subscribe(job_id, self.forward_job_update)
        logger.info(f"User {self.user.id} joined room '{key}'")
        await self.send(text_data=json.dumps({
            'type': 'room_joined_confirmation',
            'job_id': job_id,
        }))

    async def leave_job_room(self, data):
        job_id = parse_job_id(data)
        for key in (f"job_{job_id}", f"chat_{job_id}"):
            unsubscribe = self.subscriptions.pop(key, None)
            if unsubscribe is not None:
                unsubscribe()
                logger.info(f"User {self.user.id} left '{key}'")

    async def join_dashboard(self, data):
        mechanic_id = await self.get_mechanic_id()
        if mechanic_id is None:
            await self.send_error("Only mechanics have a dashboard.")
            return
        if 'dashboard' not in self.subscriptions:
            self.subscriptions['dashboard'] = subscribe_dashboard(mechanic_id, self.forward_dashboard_update)

    async def handle_location_update(self, data):
        job_id = parse_job_id(data)
        location = LocationSerializer(data=data)
        if job_id is None or not location.is_valid():
            logger.warning(f"[WS-LOCATION] Rejected location update from user {self.user.id}: {data}")
            await self.send_error("A job_id and a valid latitude and longitude are required.")
            return

        try:
            await self.update_driver_location(
                job_id, location.validated_data['latitude'], location.validated_data['longitude']
            )
        except lifecycle.JobLifecycleError as e:
            await self.send_error(str(e))

    async def join_chat(self, data):
        job_id = parse_job_id(data)
        if job_id is None:
            await self.send_error("Job not found.")
            return
        try:
            await self.check_chat_access(job_id)
        except lifecycle.JobLifecycleError as e:
            await self.send_error(str(e))
            return
        self.follow_chat(job_id)

    async def send_chat_message(self, data):
        job_id = parse_job_id(data)
        if job_id is None:
            await self.send_error("Job not found.")
            return
        try:
            message = await self.post_chat_message(job_id, data.get('text'))
        except lifecycle.JobLifecycleError as e:
            await self.send_error(str(e))
            return

        # The sender sees its own message through the chat feed like everyone else.
        self.follow_chat(job_id)
        await self.send(text_data=json.dumps({'type': 'chat_message_sent', 'message': message}))

    def follow_chat(self, job_id):
        key = f"chat_{job_id}"
        if key in self.subscriptions:
            return

        async def forward(messages):
            await self.send(text_data=json.dumps({'type': 'chat_update', 'job_id': job_id, 'messages': messages}))

        self.subscriptions[key] = subscribe_chat(job_id, forward)
        logger.info(f"User {self.user.id} joined '{key}'")

    # --- Outgoing ---

    async def forward_job_update(self, snapshot):
        await self.send(text_data=json.dumps({'type': 'job_update', 'job': snapshot}))

    async def forward_dashboard_update(self, snapshot):
        await self.send(text_data=json.dumps({'type': 'dashboard_update', 'dashboard': snapshot}))

    # --- Asynchronous Database Operations ---

    @database_sync_to_async
    def can_view_job(self, job_id):
        job = JobRequest.objects.filter(pk=job_id).only('id', 'customer_id').first()
        if job is None:
            return False
        return job.customer_id == self.user.id or self.user.is_mechanic

    @database_sync_to_async
    def get_mechanic_id(self):
        mechanic = getattr(self.user, 'mechanic_profile', None)
        return mechanic.pk if mechanic is not None else None

    @database_sync_to_async
    def update_driver_location(self, job_id, latitude, longitude):
        mechanic = getattr(self.user, 'mechanic_profile', None)
        if mechanic is None:
            raise lifecycle.NotAssignedMechanicError(job_id)
        return lifecycle.update_driver_location(job_id, mechanic, latitude, longitude)

    @database_sync_to_async
    def check_chat_access(self, job_id):
        chat.open_chat(job_id, self.user)

    @database_sync_to_async
    def post_chat_message(self, job_id, text):
        message = chat.post_chat_message(job_id, self.user, text)
        return dict(ChatMessageSerializer(message).data)
