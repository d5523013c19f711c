"""
Periodic batch sweeps driving the delivery engine.

Each sweep is idempotent, runs under its own non-overlapping lock and
returns a structured result instead of only logging.
"""
import logging
from collections import Counter, defaultdict
from datetime import timedelta
from typing import List, Optional

from django.conf import settings
from django.core.cache import cache
from django.db.models import Sum
from django.utils import timezone

from delivery.models import DeliveryLog, Order, OrderItem, Product
from delivery.services import allocation, inventory
from delivery.services.audit import log_delivery_event, mark_resolved
from delivery.services.locks import sweep_lock
from delivery.services.notification_client import send_admin_alert
from delivery.services.notifications import INVENTORY_LOW, MULTIPLE_FAILURES

logger = logging.getLogger(__name__)

AUTO_RETRY_RESOLVER = 'system:auto-retry'
DEFAULT_PRIORITY = 5


def _skipped(name: str) -> dict:
    return {'success': False, 'skipped': True, 'message': f'{name} sweep already running'}


def retry_delay(retry_count: int, delays: Optional[List[int]] = None) -> timedelta:
    """Backoff before the next attempt, indexed by the number of prior retries."""
    delays = delays if delays is not None else settings.DELIVERY_RETRY_DELAYS_MINUTES
    if not delays:
        return timedelta(0)
    return timedelta(minutes=delays[min(retry_count, len(delays) - 1)])


def is_retry_due(failed_at, retry_count: int, now=None, delays: Optional[List[int]] = None) -> bool:
    now = now or timezone.now()
    return now >= failed_at + retry_delay(retry_count, delays)


def _pending_auto_items(order: Order) -> List[OrderItem]:
    return [
        item for item in order.items.all()
        if item.product.auto_delivery and item.delivery_status == OrderItem.DeliveryStatus.PENDING
    ]


def order_priority(order: Order) -> int:
    """Lowest delivery_priority among the order's pending auto-delivery items."""
    priorities = [item.product.delivery_priority or DEFAULT_PRIORITY for item in _pending_auto_items(order)]
    return min(priorities) if priorities else DEFAULT_PRIORITY


def find_pending_orders() -> List[Order]:
    """Paid orders with pending auto-delivery items, highest priority first."""
    orders = (
        Order.objects
        .filter(
            payment_status__in=Order.PAID_STATUSES,
            auto_delivery_enabled=True,
            items__product__auto_delivery=True,
            items__delivery_status=OrderItem.DeliveryStatus.PENDING,
        )
        .distinct()
        .order_by('created_at', 'id')
        .prefetch_related('items__product')
    )
    # sorted() is stable, so equal priorities keep creation order
    return sorted(orders, key=order_priority)


def check_pending_deliveries() -> dict:
    """Run the allocation for every paid order still waiting for auto-delivery."""
    with sweep_lock('pending-deliveries') as acquired:
        if not acquired:
            return _skipped('Pending delivery')

        logger.info("Checking for pending deliveries...")
        orders = find_pending_orders()
        logger.info(f"Found {len(orders)} orders with auto-delivery items, processing by priority...")

        results = []
        processed = 0
        for order in orders:
            try:
                results.append(allocation.process_auto_delivery(order.id))
                processed += 1
            except Exception as e:
                logger.exception(f"Failed to process auto-delivery for order {order.order_number}")
                results.append({
                    'success': False,
                    'order_number': order.order_number,
                    'error': str(e),
                })

        logger.info(
            f"Pending delivery check completed. Processed {processed} orders "
            f"out of {len(orders)} total orders."
        )
        return {
            'success': True,
            'total_orders': len(orders),
            'processed_orders': processed,
            'results': results,
        }


def find_retry_candidates(now=None) -> List[DeliveryLog]:
    """Unresolved delivery failures still inside the retry window and budget."""
    now = now or timezone.now()
    window_start = now - timedelta(hours=settings.DELIVERY_RETRY_WINDOW_HOURS)
    return list(
        DeliveryLog.objects.filter(
            event_type__in=DeliveryLog.RETRYABLE_EVENTS,
            status=DeliveryLog.Status.ERROR,
            is_resolved=False,
            retry_count__lt=settings.DELIVERY_MAX_RETRIES,
            created_at__gte=window_start,
        ).order_by('created_at', 'id')
    )


def retry_failed_deliveries() -> dict:
    """
    Re-run the allocation for orders whose failure events have waited out
    their backoff delay.

    The failure events that triggered a retry are resolved by the retry
    itself; a new failure produces a new event with the next retry count,
    so each episode is retried at most DELIVERY_MAX_RETRIES times.
    """
    with sweep_lock('failed-deliveries') as acquired:
        if not acquired:
            return _skipped('Retry')

        logger.info("Checking for failed deliveries to retry...")
        now = timezone.now()

        due_by_order = defaultdict(list)
        for log in find_retry_candidates(now):
            if is_retry_due(log.created_at, log.retry_count, now):
                due_by_order[log.order_id].append(log)

        results = []
        for order_id, logs in due_by_order.items():
            attempt = max(log.retry_count for log in logs) + 1
            logger.info(f"Retrying delivery for order {order_id}, attempt {attempt}")

            for log in logs:
                mark_resolved(log.id, AUTO_RETRY_RESOLVER)

            try:
                result = allocation.process_auto_delivery(order_id, is_retry=True, retry_count=attempt)
            except Exception as e:
                logger.exception(f"Failed to retry delivery for order {order_id}")
                result = {'success': False, 'error': str(e)}
                # Keep the episode alive under the new attempt number
                last = logs[-1]
                log_delivery_event(
                    order_id=order_id,
                    order_number=last.order_number,
                    product_id=last.product_id,
                    product_title=last.product_title,
                    customer_email=last.customer_email,
                    event_type=DeliveryLog.EventType.DELIVERY_FAILED,
                    status=DeliveryLog.Status.ERROR,
                    message=f"Delivery retry failed: {e}",
                    quantity=last.quantity,
                    error_code=allocation.DELIVERY_ERROR,
                    retry_count=attempt,
                    details={'error': str(e), 'error_class': type(e).__name__},
                )

            results.append({
                'order_id': order_id,
                'retry_attempt': attempt,
                'result': result,
            })

        return {
            'success': True,
            'retried_count': len(results),
            'results': results,
        }


def check_inventory_levels() -> dict:
    """Alert on auto-delivery products whose usable stock is low or behind demand."""
    with sweep_lock('inventory-levels') as acquired:
        if not acquired:
            return _skipped('Inventory level')

        logger.info("Checking inventory levels...")
        threshold = settings.LOW_STOCK_THRESHOLD

        products = list(Product.objects.filter(auto_delivery=True).order_by('id'))
        low_stock = []
        for product in products:
            levels = inventory.inventory_levels(product)
            levels['pending_quantity'] = inventory.pending_demand(product)
            levels['threshold'] = threshold

            available = levels['available_count']
            if available <= threshold or available < levels['pending_quantity']:
                low_stock.append(levels)
                send_admin_alert(INVENTORY_LOW, {
                    'product_title': product.title,
                    'current_stock': available,
                    'threshold': threshold,
                    'pending_orders': levels['pending_quantity'],
                })

        if low_stock:
            logger.warning(f"{len(low_stock)} auto-delivery products are low on stock")

        return {
            'success': True,
            'checked_products': len(products),
            'low_stock_products': low_stock,
        }


def check_and_send_alerts() -> dict:
    """Raise MULTIPLE_FAILURES when errors pile up, at most once per hour."""
    with sweep_lock('delivery-alerts') as acquired:
        if not acquired:
            return _skipped('Alert')

        since = timezone.now() - timedelta(hours=1)
        failures = list(
            DeliveryLog.objects
            .filter(status=DeliveryLog.Status.ERROR, created_at__gte=since)
            .values('order_number', 'error_code')
        )

        if len(failures) < settings.MULTIPLE_FAILURES_THRESHOLD:
            return {'success': True, 'alerted': False, 'failure_count': len(failures)}

        # One alert per hour window
        if not cache.add('delivery:alert:multiple-failures', True, 60 * 60):
            return {'success': True, 'alerted': False, 'failure_count': len(failures)}

        error_counts = Counter(failure['error_code'] for failure in failures)
        common_error = error_counts.most_common(1)[0][0]
        send_admin_alert(MULTIPLE_FAILURES, {
            'failure_count': len(failures),
            'timeframe': 'hour',
            'affected_orders': len({failure['order_number'] for failure in failures}),
            'common_error': common_error,
        })
        return {'success': True, 'alerted': True, 'failure_count': len(failures)}


def expire_stale_credentials() -> dict:
    with sweep_lock('expired-credentials') as acquired:
        if not acquired:
            return _skipped('Credential expiry')
        return {'success': True, 'expired': inventory.expire_credentials()}


def get_delivery_overview() -> dict:
    """Item-level delivery totals and per-product inventory figures."""
    auto_items = OrderItem.objects.filter(product__auto_delivery=True)
    delivery_stats = {
        'total_auto_delivery_items': auto_items.aggregate(total=Sum('quantity'))['total'] or 0,
        'delivered_items': auto_items.filter(
            delivery_status=OrderItem.DeliveryStatus.DELIVERED
        ).aggregate(total=Sum('quantity'))['total'] or 0,
        'pending_items': auto_items.filter(
            delivery_status=OrderItem.DeliveryStatus.PENDING
        ).aggregate(total=Sum('quantity'))['total'] or 0,
        'failed_items': auto_items.filter(
            delivery_status=OrderItem.DeliveryStatus.FAILED
        ).aggregate(total=Sum('quantity'))['total'] or 0,
    }
    inventory_stats = [
        inventory.inventory_levels(product)
        for product in Product.objects.filter(auto_delivery=True).order_by('id')
    ]
    return {
        'success': True,
        'delivery_stats': delivery_stats,
        'inventory_stats': inventory_stats,
    }
