"""
Delivery audit log: append-only writer plus the read paths used by
operators (filtered listing, statistics) and the resolve action.
"""
import logging
from datetime import timedelta
from typing import Optional

from django.core.paginator import Paginator
from django.db import DatabaseError
from django.db.models import Avg, Count
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from delivery.models import DeliveryLog

logger = logging.getLogger(__name__)

TIMEFRAMES = {
    '1h': timedelta(hours=1),
    '24h': timedelta(hours=24),
    '7d': timedelta(days=7),
    '30d': timedelta(days=30),
}
DEFAULT_TIMEFRAME = '24h'

FILTER_FIELDS = {
    'order_id': 'order_id',
    'event_type': 'event_type',
    'status': 'status',
    'customer_email': 'customer_email',
    'product_id': 'product_id',
}


def log_delivery_event(**fields) -> Optional[DeliveryLog]:
    """
    Append one audit event.

    Storage failures are logged and swallowed: a broken audit write must
    never undo or abort a delivery that already happened.
    """
    try:
        return DeliveryLog.objects.create(**fields)
    except DatabaseError:
        logger.exception(
            f"Failed to write delivery log {fields.get('event_type')} "
            f"for order {fields.get('order_number')}"
        )
        return None


def _parse_date(value):
    if value is None or hasattr(value, 'tzinfo'):
        return value
    parsed = parse_datetime(str(value))
    if parsed is not None and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def get_delivery_logs(filters: Optional[dict] = None, page: int = 1, limit: int = 50) -> dict:
    """
    Filterable, paginated listing of audit events, newest first.

    Supported filters: order_id, event_type, status, customer_email,
    product_id, start_date, end_date, is_resolved.
    """
    filters = filters or {}
    queryset = DeliveryLog.objects.all()

    for key, field in FILTER_FIELDS.items():
        if filters.get(key) not in (None, ''):
            queryset = queryset.filter(**{field: filters[key]})

    if filters.get('is_resolved') is not None:
        queryset = queryset.filter(is_resolved=filters['is_resolved'])

    start_date = _parse_date(filters.get('start_date'))
    end_date = _parse_date(filters.get('end_date'))
    if start_date:
        queryset = queryset.filter(created_at__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__lte=end_date)

    paginator = Paginator(queryset.order_by('-created_at', '-id'), limit)
    page_obj = paginator.get_page(page)

    return {
        'logs': list(page_obj.object_list),
        'pagination': {
            'page': page_obj.number,
            'limit': limit,
            'total': paginator.count,
            'pages': paginator.num_pages if paginator.count else 0,
        },
    }


def get_delivery_stats(timeframe: str = DEFAULT_TIMEFRAME) -> dict:
    """Status and event-type histograms over a rolling window."""
    if timeframe not in TIMEFRAMES:
        logger.debug(f"Unknown timeframe {timeframe!r}, falling back to {DEFAULT_TIMEFRAME}")
        timeframe = DEFAULT_TIMEFRAME

    start_date = timezone.now() - TIMEFRAMES[timeframe]
    window = DeliveryLog.objects.filter(created_at__gte=start_date)

    status_stats = list(
        window.values('status')
        .annotate(count=Count('id'), avg_processing_time_ms=Avg('processing_time_ms'))
        .order_by('status')
    )
    event_stats = list(
        window.values('event_type')
        .annotate(count=Count('id'))
        .order_by('event_type')
    )

    unresolved = window.filter(status=DeliveryLog.Status.ERROR, is_resolved=False)

    return {
        'timeframe': timeframe,
        'status_stats': status_stats,
        'event_stats': event_stats,
        'unresolved_errors': unresolved.count(),
        'recent_errors': list(unresolved.order_by('-created_at', '-id')[:10]),
    }


def mark_resolved(log_id: int, resolved_by: str) -> DeliveryLog:
    """
    Flip an event to resolved and stamp who resolved it.

    Raises:
        DeliveryLog.DoesNotExist: if the event is unknown
    """
    log = DeliveryLog.objects.get(pk=log_id)
    if log.is_resolved:
        logger.info(f"Delivery log {log_id} already resolved by {log.resolved_by}")
        return log

    log.is_resolved = True
    log.resolved_by = resolved_by
    log.resolved_at = timezone.now()
    log.save(update_fields=['is_resolved', 'resolved_by', 'resolved_at'])
    logger.info(f"Delivery log {log_id} resolved by {resolved_by}")
    return log
