"""
Cache invalidation signals
Report caches are dropped whenever allocation data changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from backend.core.cache_utils import invalidate_cache_pattern
from .models import AllocationRecord, AllocationLine, UsedSample

logger = logging.getLogger(__name__)

REPORT_CACHE_PREFIXES = ('allocation_summary', 'allocation_ledger')


def invalidate_allocation_reports():
    """Drop cached summary and ledger reports (bulk updates bypass post_save)"""
    for prefix in REPORT_CACHE_PREFIXES:
        invalidate_cache_pattern(prefix)
    logger.debug("Invalidated allocation report caches")


@receiver(post_save, sender=AllocationRecord)
@receiver(post_delete, sender=AllocationRecord)
@receiver(post_save, sender=AllocationLine)
@receiver(post_delete, sender=AllocationLine)
@receiver(post_save, sender=UsedSample)
@receiver(post_delete, sender=UsedSample)
def allocation_data_changed(sender, **kwargs):
    invalidate_allocation_reports()
