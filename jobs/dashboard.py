from django.db.models import Q

from .models import JobRequest
from .serializers import JobRequestSerializer

DASHBOARD_LIMIT = 50


def get_dashboard_data(mechanic):
    """Open NEW jobs plus the mechanic's own jobs, newest first."""
    jobs = (
        JobRequest.objects.select_related('customer', 'mechanic__user')
        .filter(Q(status=JobRequest.Status.NEW) | Q(mechanic=mechanic))
        .order_by('-created_at', '-id')[:DASHBOARD_LIMIT * 2]
    )
    return {
        "jobs": JobRequestSerializer(jobs, many=True).data,
        "earnings": {key: str(value) for key, value in mechanic.earnings.items()},
        "is_online": mechanic.is_online,
        "stripe_connected": mechanic.stripe_connected,
    }
