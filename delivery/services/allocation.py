"""
Allocation of credential records to paid orders.

``process_auto_delivery`` is the single entry point used by the payment
confirmation hook, the manual admin trigger and the periodic sweeps.
"""
import logging
import time
from typing import List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from delivery.models import Assignment, DeliveryLog, Order, OrderItem
from delivery.services.audit import log_delivery_event
from delivery.services.inventory import (
    InsufficientInventoryError,
    available_credential_count,
    claim_credentials,
    eligible_credentials,
)
from delivery.services.locks import order_lock
from delivery.services.notification_client import (
    alert_channels_configured,
    send_admin_alert,
    send_customer_delivery_email,
    send_order_completed_email,
)
from delivery.services.notifications import DELIVERY_FAILURE, RETRY_EXHAUSTED, join_credentials

logger = logging.getLogger(__name__)

INSUFFICIENT_INVENTORY = 'INSUFFICIENT_INVENTORY'
DELIVERY_ERROR = 'DELIVERY_ERROR'
ADMIN_ALERT_FAILED = 'ADMIN_ALERT_FAILED'


def _elapsed_ms(started_at: float) -> int:
    return int((time.monotonic() - started_at) * 1000)


def process_auto_delivery(order_id, is_retry: bool = False, retry_count: int = 0) -> dict:
    """
    Allocate credentials to every undelivered auto-delivery item of an order.

    Workflow:
    1. Load order, check payment and the per-order auto-delivery switch
    2. Move the order to processing and log the start (or retry) event
    3. Deliver each item independently (all-or-nothing per item)
    4. Mark the order delivered once every auto-delivery item is delivered

    Args:
        order_id: ID of the Order to deliver
        is_retry: True when invoked by the retry sweep
        retry_count: retry attempt number (0 for a first attempt)

    Returns:
        dict with success, order_number and delivery_results, or a
        "not applicable" dict with success=False and a message

    Raises:
        Order.DoesNotExist: if the order is unknown
    """
    started_at = time.monotonic()

    with order_lock(order_id):
        try:
            order = Order.objects.get(pk=order_id)
        except Order.DoesNotExist:
            logger.error(f"Order {order_id} not found in database")
            raise

        if not order.is_payment_confirmed:
            logger.info(
                f"Order {order.order_number} payment not confirmed yet. "
                f"Status: {order.payment_status}"
            )
            return {
                'success': False,
                'message': 'Payment not confirmed',
                'order_number': order.order_number,
            }

        if not order.auto_delivery_enabled:
            logger.info(f"Auto-delivery is disabled for order {order.order_number}, skipping")
            return {
                'success': False,
                'message': 'Auto-delivery disabled for this order',
                'order_number': order.order_number,
                'requires_manual_delivery': True,
            }

        logger.info(f"Processing auto-delivery for order {order.order_number}")

        if order.status in (Order.Status.PENDING, Order.Status.CONFIRMED):
            order.status = Order.Status.PROCESSING
            order.save(update_fields=['status', 'updated_at'])
            logger.info(f"Order {order.order_number} status updated to processing")

        items = list(order.items.select_related('product'))
        first_product = items[0].product if items else None

        log_delivery_event(
            order=order,
            order_number=order.order_number,
            product=first_product,
            product_title=first_product.title if len(items) == 1 else 'Multiple Products',
            customer_email=order.customer_email,
            event_type=(
                DeliveryLog.EventType.DELIVERY_RETRY if is_retry
                else DeliveryLog.EventType.DELIVERY_STARTED
            ),
            status=DeliveryLog.Status.INFO,
            message=(
                f"Auto-delivery retry attempt {retry_count} for order {order.order_number}" if is_retry
                else f"Auto-delivery process started for order {order.order_number}"
            ),
            quantity=sum(item.quantity for item in items),
            retry_count=retry_count,
        )

        delivery_results = []
        for item in items:
            product = item.product

            if item.is_delivered:
                delivery_results.append({
                    'product_id': product.id,
                    'product_title': product.title,
                    'status': 'already_delivered',
                })
                continue

            if not product.auto_delivery:
                delivery_results.append({
                    'product_id': product.id,
                    'product_title': product.title,
                    'status': 'manual_delivery_required',
                    'message': 'Auto-delivery not enabled for this product',
                })
                continue

            delivery_results.append(
                _deliver_item(order, item, started_at, retry_count)
            )

        _complete_order(order, items)

        return {
            'success': True,
            'order_number': order.order_number,
            'delivery_results': delivery_results,
        }


def _deliver_item(order: Order, item: OrderItem, started_at: float, retry_count: int) -> dict:
    product = item.product
    required = item.quantity
    first_failure = retry_count == 0 and item.delivery_status != OrderItem.DeliveryStatus.FAILED

    try:
        with transaction.atomic():
            # Row locks serialise concurrent workers on the same order
            Order.objects.select_for_update().get(pk=order.pk)
            locked_item = OrderItem.objects.select_for_update().get(pk=item.pk)

            if locked_item.is_delivered:
                item.refresh_from_db()
                return {
                    'product_id': product.id,
                    'product_title': product.title,
                    'status': 'already_delivered',
                }

            found = list(eligible_credentials(product)[:required])
            if len(found) < required:
                raise InsufficientInventoryError(
                    required=required,
                    available=available_credential_count(product),
                    found_in_query=len(found),
                )

            claimed = claim_credentials(product, required)
            for index, record in enumerate(claimed, 1):
                Assignment.objects.create(
                    credential=record,
                    order=order,
                    order_number=order.order_number,
                    customer_email=order.customer_email,
                    customer_name=order.customer_name,
                    status=Assignment.Status.ACTIVE,
                    notes=f"Auto-delivered for order {order.order_number} ({index}/{required})",
                )

            credentials = [record.credentials for record in claimed]
            locked_item.auto_delivery = True
            locked_item.delivered = True
            locked_item.delivery_status = OrderItem.DeliveryStatus.DELIVERED
            locked_item.delivered_at = timezone.now()
            locked_item.credentials = join_credentials(credentials)
            locked_item.save(update_fields=[
                'auto_delivery', 'delivered', 'delivery_status', 'delivered_at', 'credentials',
            ])
            order.delivered_inventory.add(*claimed)

    except InsufficientInventoryError as e:
        return _record_shortage(order, item, e, started_at, retry_count, first_failure)

    except Exception as e:
        logger.exception(f"Error delivering {product.title} for order {order.order_number}")
        return _record_error(order, item, e, started_at, retry_count, first_failure)

    item.refresh_from_db()
    inventory_ids = [record.id for record in claimed]

    log_delivery_event(
        order=order,
        order_number=order.order_number,
        product=product,
        product_title=product.title,
        customer_email=order.customer_email,
        event_type=DeliveryLog.EventType.DELIVERY_SUCCESS,
        status=DeliveryLog.Status.SUCCESS,
        message=f"Successfully delivered {required}x {product.title}",
        quantity=required,
        inventory_used=len(claimed),
        processing_time_ms=_elapsed_ms(started_at),
        retry_count=retry_count,
        details={
            'credentials_delivered': len(credentials),
            'inventory_ids': inventory_ids,
        },
    )
    logger.info(f"Auto-delivered {required}x {product.title} for order {order.order_number}")

    send_customer_delivery_email(order, item, credentials)

    return {
        'product_id': product.id,
        'product_title': product.title,
        'status': 'delivered',
        'quantity': required,
        'inventory_ids': inventory_ids,
    }


def _mark_item_failed(item: OrderItem):
    OrderItem.objects.filter(pk=item.pk).update(
        auto_delivery=True,
        delivery_status=OrderItem.DeliveryStatus.FAILED,
    )
    item.auto_delivery = True
    item.delivery_status = OrderItem.DeliveryStatus.FAILED


def _alert_failure(order, item, error_message: str, error_code: str, retry_count: int, first_failure: bool):
    """DELIVERY_FAILURE on the first failure of an episode, RETRY_EXHAUSTED on the last."""
    product = item.product
    if first_failure:
        alert_type = DELIVERY_FAILURE
        data = {
            'order_number': order.order_number,
            'customer_email': order.customer_email,
            'product_title': product.title,
            'quantity': item.quantity,
            'error_message': error_message,
            'error_code': error_code,
            'retry_count': retry_count,
        }
    elif retry_count >= settings.DELIVERY_MAX_RETRIES:
        alert_type = RETRY_EXHAUSTED
        data = {
            'order_number': order.order_number,
            'customer_email': order.customer_email,
            'product_title': product.title,
            'retry_count': retry_count,
            'last_error': error_message,
        }
    else:
        return

    if send_admin_alert(alert_type, data) or not alert_channels_configured():
        return

    logger.error(f"Admin alert {alert_type} for order {order.order_number} was not delivered")
    log_delivery_event(
        order=order,
        order_number=order.order_number,
        product=product,
        product_title=product.title,
        customer_email=order.customer_email,
        event_type=DeliveryLog.EventType.EMAIL_FAILED,
        status=DeliveryLog.Status.ERROR,
        message=f"Failed to send {alert_type} admin alert",
        quantity=item.quantity,
        error_code=ADMIN_ALERT_FAILED,
        retry_count=retry_count,
        details={'alert_type': alert_type, 'error': error_message},
    )


def _record_shortage(order, item, error: InsufficientInventoryError, started_at, retry_count, first_failure) -> dict:
    product = item.product
    _mark_item_failed(item)
    message = str(error)

    log_delivery_event(
        order=order,
        order_number=order.order_number,
        product=product,
        product_title=product.title,
        customer_email=order.customer_email,
        event_type=DeliveryLog.EventType.INSUFFICIENT_INVENTORY,
        status=DeliveryLog.Status.ERROR,
        message=message,
        quantity=error.required,
        inventory_used=0,
        processing_time_ms=_elapsed_ms(started_at),
        error_code=INSUFFICIENT_INVENTORY,
        retry_count=retry_count,
        details={
            'required': error.required,
            'available': error.available,
            'found_in_query': error.found_in_query,
        },
    )
    _alert_failure(order, item, message, INSUFFICIENT_INVENTORY, retry_count, first_failure)

    logger.warning(f"{message} for {product.title} in order {order.order_number}")
    return {
        'product_id': product.id,
        'product_title': product.title,
        'status': 'insufficient_inventory',
        'required': error.required,
        'available': error.available,
        'message': message,
    }


def _record_error(order, item, error: Exception, started_at, retry_count, first_failure) -> dict:
    product = item.product
    _mark_item_failed(item)

    log_delivery_event(
        order=order,
        order_number=order.order_number,
        product=product,
        product_title=product.title,
        customer_email=order.customer_email,
        event_type=DeliveryLog.EventType.DELIVERY_FAILED,
        status=DeliveryLog.Status.ERROR,
        message=f"Delivery failed: {error}",
        quantity=item.quantity,
        inventory_used=0,
        processing_time_ms=_elapsed_ms(started_at),
        error_code=DELIVERY_ERROR,
        retry_count=retry_count,
        details={'error': str(error), 'error_class': type(error).__name__},
    )
    _alert_failure(order, item, str(error), DELIVERY_ERROR, retry_count, first_failure)

    return {
        'product_id': product.id,
        'product_title': product.title,
        'status': 'error',
        'error': str(error),
    }


def _complete_order(order: Order, items: List[OrderItem]):
    """Order becomes delivered only when every auto-delivery item is delivered."""
    auto_items = [item for item in items if item.product.auto_delivery]
    if not auto_items:
        return

    if all(item.is_delivered for item in auto_items):
        if order.status == Order.Status.DELIVERED:
            return
        order.status = Order.Status.DELIVERED
        order.delivered_at = timezone.now()
        order.delivery_method = Order.DeliveryMethod.AUTO
        order.save(update_fields=['status', 'delivered_at', 'delivery_method', 'updated_at'])
        logger.info(f"Order {order.order_number} status updated to delivered")
        send_order_completed_email(order)
    elif any(item.delivery_status == OrderItem.DeliveryStatus.FAILED for item in auto_items):
        logger.info(
            f"Order {order.order_number} has failed delivery items, keeping in processing status"
        )
