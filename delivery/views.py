"""
API views for the auto-delivery engine.
"""
import logging
import uuid
from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from delivery.models import DeliveryLog, Order
from delivery.serializers import (
    DeliveryLogFilterSerializer,
    DeliveryLogSerializer,
    PaymentConfirmedSerializer,
)
from delivery.services import audit, sweeps
from delivery.services.payments import confirm_payment
from delivery.tasks import process_order_delivery

logger = logging.getLogger(__name__)


class PaymentConfirmedWebhookView(APIView):
    """
    Webhook called by the payment collaborator once an order is paid.

    POST /api/delivery/payments/confirmed/
    - Optional shared secret in the X-Webhook-Secret header
    - Marks the order paid and runs auto-delivery immediately
    """

    authentication_classes = []
    permission_classes = []

    def post(self, request):
        correlation_id = str(uuid.uuid4())

        secret = settings.PAYMENT_WEBHOOK_SECRET
        if secret and not constant_time_compare(request.headers.get('X-Webhook-Secret', ''), secret):
            logger.warning(f"Payment webhook rejected: bad secret, correlation_id={correlation_id}")
            return Response(
                {'error': 'Invalid webhook secret', 'correlation_id': correlation_id},
                status=status.HTTP_403_FORBIDDEN
            )

        serializer = PaymentConfirmedSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': serializer.errors, 'correlation_id': correlation_id},
                status=status.HTTP_400_BAD_REQUEST
            )

        order_id = serializer.validated_data['order_id']
        try:
            result = confirm_payment(order_id, serializer.validated_data['payment_status'])
        except Order.DoesNotExist:
            return Response(
                {'error': 'Order not found', 'correlation_id': correlation_id},
                status=status.HTTP_404_NOT_FOUND
            )

        logger.info(f"Payment confirmed for order {order_id}, correlation_id={correlation_id}")
        return Response(
            {'status': 'accepted', 'data': result, 'correlation_id': correlation_id},
            status=status.HTTP_200_OK
        )


class TriggerDeliveryView(APIView):
    """POST /api/delivery/orders/<order_id>/trigger/ - manual admin trigger."""

    permission_classes = [IsAdminUser]

    def post(self, request, order_id):
        order = Order.objects.filter(pk=order_id).only('id', 'order_number').first()
        if order is None:
            return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)

        # Enqueue async delivery
        task = process_order_delivery.delay(order.id)
        logger.info(f"Order {order.order_number} enqueued for delivery by {request.user}, task_id={task.id}")

        return Response({
            'success': True,
            'status': 'accepted',
            'order_id': order.id,
            'order_number': order.order_number,
            'task_id': task.id,
        })


class SweepView(APIView):
    """POST /api/delivery/sweeps/<name>/ - run one sweep now."""

    permission_classes = [IsAdminUser]

    SWEEPS = {
        'pending': sweeps.check_pending_deliveries,
        'retries': sweeps.retry_failed_deliveries,
        'stock': sweeps.check_inventory_levels,
        'alerts': sweeps.check_and_send_alerts,
        'expired': sweeps.expire_stale_credentials,
    }

    def post(self, request, name):
        sweep = self.SWEEPS.get(name)
        if sweep is None:
            return Response({'error': f'Unknown sweep: {name}'}, status=status.HTTP_404_NOT_FOUND)

        result = sweep()
        if result.get('skipped'):
            return Response(result, status=status.HTTP_409_CONFLICT)
        return Response({'success': True, 'data': result})


class DeliveryLogListView(APIView):
    """GET /api/delivery/logs/ - filtered, paginated audit events."""

    permission_classes = [IsAdminUser]

    def get(self, request):
        filters = DeliveryLogFilterSerializer(data=request.query_params.dict())
        if not filters.is_valid():
            return Response({'error': filters.errors}, status=status.HTTP_400_BAD_REQUEST)

        params = dict(filters.validated_data)
        page = params.pop('page')
        limit = params.pop('limit')
        listing = audit.get_delivery_logs(params, page=page, limit=limit)

        return Response({
            'success': True,
            'data': DeliveryLogSerializer(listing['logs'], many=True).data,
            'pagination': listing['pagination'],
        })


class DeliveryStatsView(APIView):
    """GET /api/delivery/logs/stats/?timeframe=24h"""

    permission_classes = [IsAdminUser]

    def get(self, request):
        stats = audit.get_delivery_stats(request.query_params.get('timeframe', audit.DEFAULT_TIMEFRAME))
        stats['recent_errors'] = DeliveryLogSerializer(stats['recent_errors'], many=True).data
        return Response({'success': True, 'data': stats})


class ResolveDeliveryLogView(APIView):
    """POST /api/delivery/logs/<log_id>/resolve/"""

    permission_classes = [IsAdminUser]

    def post(self, request, log_id):
        resolved_by = request.data.get('resolved_by') or request.user.get_username()
        try:
            log = audit.mark_resolved(log_id, resolved_by)
        except DeliveryLog.DoesNotExist:
            return Response({'error': 'Delivery log not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response({'success': True, 'data': DeliveryLogSerializer(log).data})


class DeliveryOverviewView(APIView):
    """GET /api/delivery/overview/ - item totals and stock per product."""

    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response({'success': True, 'data': sweeps.get_delivery_overview()})
