import logging

from django.db.models.signals import post_save
from django.dispatch import receiver
from django.urls import reverse

from core.cache import invalidate_view
from users.models import Mechanic

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Mechanic)
def invalidate_mechanic_cache(sender, instance, **kwargs):
    """
    Drops the cached mechanic profile so availability, rating and earnings
    are never served stale.
    """
    invalidate_view(instance.user, reverse('mechanic-profile'))
    logger.debug(f"Invalidated cached profile for mechanic {instance.pk}")
