"""
Inbound payment confirmation: the only trigger for immediate allocation.
"""
import logging

from django.utils import timezone

from delivery.models import Order
from delivery.services.allocation import process_auto_delivery

logger = logging.getLogger(__name__)


def confirm_payment(order_id, payment_status: str = Order.PaymentStatus.PAID) -> dict:
    """
    Record that an order's payment is confirmed and run its auto-delivery.

    Raises:
        ValueError: if payment_status is not a confirmed status
        Order.DoesNotExist: if the order is unknown
    """
    if payment_status not in Order.PAID_STATUSES:
        raise ValueError(f"{payment_status} is not a confirmed payment status")

    order = Order.objects.get(pk=order_id)
    if order.payment_status != payment_status:
        order.payment_status = payment_status
        order.paid_at = order.paid_at or timezone.now()
        if order.status == Order.Status.PENDING:
            order.status = Order.Status.CONFIRMED
        order.save(update_fields=['payment_status', 'paid_at', 'status', 'updated_at'])
        logger.info(f"Order {order.order_number} payment marked {payment_status}")

    return process_auto_delivery(order.id)
