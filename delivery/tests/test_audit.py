"""
Unit tests for the delivery audit log.
"""
import pytest
from datetime import timedelta
from unittest.mock import patch
from django.db import DatabaseError
from django.utils import timezone

from delivery.models import DeliveryLog
from delivery.services.audit import get_delivery_logs, get_delivery_stats, log_delivery_event, mark_resolved


def add_event(order, event_type=DeliveryLog.EventType.DELIVERY_SUCCESS, status=DeliveryLog.Status.SUCCESS,
              minutes_ago=0, **extra):
    item = order.items.first()
    return DeliveryLog.objects.create(
        order=order,
        order_number=order.order_number,
        product=item.product if item else None,
        product_title=item.product.title if item else 'Multiple Products',
        customer_email=order.customer_email,
        event_type=event_type,
        status=status,
        message=f'{event_type} for {order.order_number}',
        created_at=timezone.now() - timedelta(minutes=minutes_ago),
        **extra
    )


@pytest.mark.django_db
class TestLogDeliveryEvent:
    """Tests for the append-only writer."""

    def test_event_is_written(self, product, make_order):
        order = make_order(items=[(product, 1)])

        log = log_delivery_event(
            order=order,
            order_number=order.order_number,
            product=product,
            product_title=product.title,
            customer_email=order.customer_email,
            event_type=DeliveryLog.EventType.DELIVERY_STARTED,
            status=DeliveryLog.Status.INFO,
            message='started',
        )

        assert log is not None
        assert log.pk is not None
        assert log.is_resolved is False
        assert log.retry_count == 0
        assert log.details == {}

    @patch('delivery.services.audit.DeliveryLog.objects.create')
    def test_storage_failure_is_swallowed(self, mock_create, db):
        mock_create.side_effect = DatabaseError('disk full')

        result = log_delivery_event(order_number='ZLX-00001', event_type='delivery_started')

        assert result is None
        mock_create.assert_called_once()


@pytest.mark.django_db
class TestGetDeliveryLogs:
    """Tests for the filtered, paginated listing."""

    def test_newest_first_with_pagination(self, product, make_order):
        order = make_order(items=[(product, 1)])
        events = [add_event(order, minutes_ago=10 - i) for i in range(7)]

        first_page = get_delivery_logs(page=1, limit=3)
        last_page = get_delivery_logs(page=3, limit=3)

        assert [log.id for log in first_page['logs']] == [e.id for e in reversed(events)][:3]
        assert first_page['pagination'] == {'page': 1, 'limit': 3, 'total': 7, 'pages': 3}
        assert [log.id for log in last_page['logs']] == [events[0].id]

    def test_empty_listing_has_zero_pages(self, db):
        listing = get_delivery_logs()

        assert listing['logs'] == []
        assert listing['pagination'] == {'page': 1, 'limit': 50, 'total': 0, 'pages': 0}

    def test_filters(self, product, make_product, make_order):
        other = make_product(title='Spotify Family')
        order = make_order(items=[(product, 1)])
        other_order = make_order(items=[(other, 1)], customer_email='someone@example.com')
        failed = add_event(order, DeliveryLog.EventType.INSUFFICIENT_INVENTORY, DeliveryLog.Status.ERROR)
        add_event(order)
        resolved = add_event(other_order, DeliveryLog.EventType.DELIVERY_FAILED, DeliveryLog.Status.ERROR,
                             is_resolved=True, resolved_by='ops')

        def ids(**filters):
            return [log.id for log in get_delivery_logs(filters)['logs']]

        assert len(ids(order_id=order.id)) == 2
        assert ids(event_type='insufficient_inventory') == [failed.id]
        assert set(ids(status='error')) == {failed.id, resolved.id}
        assert ids(customer_email='someone@example.com') == [resolved.id]
        assert ids(product_id=other.id) == [resolved.id]
        assert ids(status='error', is_resolved=False) == [failed.id]
        assert ids(is_resolved=True) == [resolved.id]
        # Empty values are ignored
        assert len(ids(event_type='', is_resolved=None)) == 3

    def test_date_range_filter(self, product, make_order):
        order = make_order(items=[(product, 1)])
        old = add_event(order, minutes_ago=3 * 24 * 60)
        recent = add_event(order, minutes_ago=30)

        since_yesterday = timezone.now() - timedelta(days=1)
        assert [log.id for log in get_delivery_logs({'start_date': since_yesterday})['logs']] == [recent.id]
        assert [log.id for log in get_delivery_logs({'end_date': since_yesterday})['logs']] == [old.id]
        assert [
            log.id for log in get_delivery_logs({'start_date': since_yesterday.isoformat()})['logs']
        ] == [recent.id]


@pytest.mark.django_db
class TestGetDeliveryStats:
    """Tests for the rolling-window statistics."""

    def test_stats_over_default_window(self, product, make_order):
        order = make_order(items=[(product, 1)])
        add_event(order, processing_time_ms=100)
        add_event(order, processing_time_ms=300)
        error = add_event(order, DeliveryLog.EventType.INSUFFICIENT_INVENTORY, DeliveryLog.Status.ERROR)
        add_event(order, DeliveryLog.EventType.DELIVERY_FAILED, DeliveryLog.Status.ERROR,
                  is_resolved=True, resolved_by='ops')
        add_event(order, minutes_ago=2 * 24 * 60)

        stats = get_delivery_stats()

        assert stats['timeframe'] == '24h'
        status_stats = {row['status']: row for row in stats['status_stats']}
        assert status_stats['success']['count'] == 2
        assert status_stats['success']['avg_processing_time_ms'] == 200
        assert status_stats['error']['count'] == 2
        event_stats = {row['event_type']: row['count'] for row in stats['event_stats']}
        assert event_stats == {'delivery_success': 2, 'insufficient_inventory': 1, 'delivery_failed': 1}
        assert stats['unresolved_errors'] == 1
        assert [log.id for log in stats['recent_errors']] == [error.id]

    def test_wider_window_includes_older_events(self, product, make_order):
        order = make_order(items=[(product, 1)])
        add_event(order)
        add_event(order, minutes_ago=2 * 24 * 60)

        assert sum(row['count'] for row in get_delivery_stats('7d')['status_stats']) == 2
        assert sum(row['count'] for row in get_delivery_stats('1h')['status_stats']) == 1

    def test_unknown_timeframe_falls_back_to_a_day(self, db):
        assert get_delivery_stats('forever')['timeframe'] == '24h'

    def test_recent_errors_are_capped(self, product, make_order):
        order = make_order(items=[(product, 1)])
        for i in range(12):
            add_event(order, DeliveryLog.EventType.DELIVERY_FAILED, DeliveryLog.Status.ERROR, minutes_ago=i)

        stats = get_delivery_stats()

        assert stats['unresolved_errors'] == 12
        assert len(stats['recent_errors']) == 10


@pytest.mark.django_db
class TestMarkResolved:
    """Tests for the resolve action."""

    def test_resolve_stamps_resolver(self, product, make_order):
        order = make_order(items=[(product, 1)])
        event = add_event(order, DeliveryLog.EventType.DELIVERY_FAILED, DeliveryLog.Status.ERROR)

        resolved = mark_resolved(event.id, 'ops@zelyx.shop')

        assert resolved.is_resolved is True
        assert resolved.resolved_by == 'ops@zelyx.shop'
        assert resolved.resolved_at is not None
        event.refresh_from_db()
        assert event.is_resolved is True

    def test_resolve_is_idempotent(self, product, make_order):
        order = make_order(items=[(product, 1)])
        event = add_event(order, DeliveryLog.EventType.DELIVERY_FAILED, DeliveryLog.Status.ERROR)
        first = mark_resolved(event.id, 'first-operator')

        second = mark_resolved(event.id, 'second-operator')

        assert second.resolved_by == 'first-operator'
        assert second.resolved_at == first.resolved_at

    def test_unknown_event_raises(self, db):
        with pytest.raises(DeliveryLog.DoesNotExist):
            mark_resolved(424242, 'ops')
