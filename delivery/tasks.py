"""
Celery tasks for async delivery processing and the periodic sweeps.
"""
import logging
from celery import shared_task
from django.db import OperationalError

from delivery.models import Order
from delivery.services import sweeps
from delivery.services.allocation import process_auto_delivery

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(OperationalError,),
    retry_backoff=30,  # Exponential backoff starting at 30s
    retry_backoff_max=480,  # Max backoff of 480s (8 minutes)
    max_retries=5,
    retry_jitter=False  # Disable jitter for predictable backoff
)
def process_order_delivery(self, order_id: int, is_retry: bool = False, retry_count: int = 0):
    """
    Run the auto-delivery allocation for one order.

    Only storage outages (OperationalError) are retried by Celery; delivery
    shortages are recorded in the audit log and retried by the retry sweep.

    Args:
        order_id: ID of the Order to deliver
    """
    try:
        result = process_auto_delivery(order_id, is_retry=is_retry, retry_count=retry_count)
    except Order.DoesNotExist:
        logger.error(f"Order {order_id} not found, nothing to deliver")
        return {'success': False, 'message': 'Order not found', 'order_id': order_id}

    logger.info(f"Order {order_id} delivery finished: success={result.get('success')}")
    return result


@shared_task
def sweep_pending_deliveries():
    return sweeps.check_pending_deliveries()


@shared_task
def sweep_failed_deliveries():
    return sweeps.retry_failed_deliveries()


@shared_task
def sweep_inventory_levels():
    return sweeps.check_inventory_levels()


@shared_task
def sweep_delivery_alerts():
    return sweeps.check_and_send_alerts()


@shared_task
def sweep_expired_credentials():
    return sweeps.expire_stale_credentials()
