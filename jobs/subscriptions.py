"""
Polling-as-push change feed for job requests and the mechanic dashboard.

A poller re-reads its record every `interval` seconds and reports a snapshot
only when it differs from the last one it saw. There is no backoff; a failed
read is logged and retried on the next tick. Callers only ever get an
`unsubscribe` callable back, so a real push transport can replace this
without touching them.
"""
import asyncio
import inspect
import logging
from functools import partial

from channels.db import database_sync_to_async
from django.conf import settings

logger = logging.getLogger(__name__)


def default_interval():
    return float(settings.MECHANICNOW.get("POLL_INTERVAL", 1.0))


class JobPoller:

    def __init__(self, fetch, on_change, interval=None):
        self.fetch = fetch
        self.on_change = on_change
        self.interval = default_interval() if interval is None else float(interval)
        self._last = None

    async def poll_once(self):
        """Fetch once; returns True if on_change was called."""
        snapshot = await self.fetch()
        if snapshot is None or snapshot == self._last:
            return False
        self._last = snapshot
        result = self.on_change(snapshot)
        if inspect.isawaitable(result):
            await result
        return True

    async def run(self):
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Poll failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)


def _load_job_snapshot(job_id):
    from .models import JobRequest
    from .serializers import JobRequestSerializer

    job = (
        JobRequest.objects.select_related('customer', 'mechanic__user')
        .filter(pk=job_id)
        .first()
    )
    if job is None:
        return None
    return dict(JobRequestSerializer(job).data)


def _load_dashboard_snapshot(mechanic_id):
    from users.models import Mechanic
    from .dashboard import get_dashboard_data

    mechanic = Mechanic.objects.filter(pk=mechanic_id).first()
    if mechanic is None:
        return None
    data = get_dashboard_data(mechanic)
    data["jobs"] = [dict(job) for job in data["jobs"]]
    return data


def _load_chat_snapshot(job_id):
    from .models import ChatMessage
    from .serializers import ChatMessageSerializer

    messages = ChatMessage.objects.filter(job_id=job_id).select_related('sender')
    return [dict(message) for message in ChatMessageSerializer(messages, many=True).data]


fetch_job_snapshot = database_sync_to_async(_load_job_snapshot)
fetch_dashboard_snapshot = database_sync_to_async(_load_dashboard_snapshot)
fetch_chat_snapshot = database_sync_to_async(_load_chat_snapshot)


def _start(poller):
    task = asyncio.get_running_loop().create_task(poller.run())

    def unsubscribe():
        task.cancel()

    return unsubscribe


def subscribe(job_id, on_change, interval=None, fetch=None):
    """
    Watch one job request. Must be called from a running event loop.
    Returns a callable that stops the watch.
    """
    fetch = fetch or partial(fetch_job_snapshot, job_id)
    logger.info(f"Subscribed to job {job_id}")
    return _start(JobPoller(fetch, on_change, interval))


def subscribe_dashboard(mechanic_id, on_change, interval=None, fetch=None):
    fetch = fetch or partial(fetch_dashboard_snapshot, mechanic_id)
    logger.info(f"Subscribed to dashboard of mechanic {mechanic_id}")
    return _start(JobPoller(fetch, on_change, interval))


def subscribe_chat(job_id, on_change, interval=None, fetch=None):
    """Watch a job's chat log; `on_change` gets the whole log each time it grows."""
    fetch = fetch or partial(fetch_chat_snapshot, job_id)
    logger.info(f"Subscribed to chat of job {job_id}")
    return _start(JobPoller(fetch, on_change, interval))
