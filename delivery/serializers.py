"""
Serializers for the delivery API.
"""
from rest_framework import serializers

from delivery.models import DeliveryLog


class DeliveryLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryLog
        fields = (
            'id', 'order', 'order_number', 'product', 'product_title', 'customer_email',
            'event_type', 'status', 'message', 'details', 'quantity', 'inventory_used',
            'error_code', 'processing_time_ms', 'retry_count', 'is_resolved',
            'resolved_by', 'resolved_at', 'created_at',
        )
        read_only_fields = fields


class DeliveryLogFilterSerializer(serializers.Serializer):
    """Query-string filters for the audit log listing."""

    order_id = serializers.IntegerField(required=False)
    event_type = serializers.ChoiceField(choices=DeliveryLog.EventType.choices, required=False)
    status = serializers.ChoiceField(choices=DeliveryLog.Status.choices, required=False)
    customer_email = serializers.EmailField(required=False)
    product_id = serializers.IntegerField(required=False)
    start_date = serializers.DateTimeField(required=False)
    end_date = serializers.DateTimeField(required=False)
    is_resolved = serializers.BooleanField(required=False, allow_null=True, default=None)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200, default=50)


class PaymentConfirmedSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    payment_status = serializers.ChoiceField(
        choices=['paid', 'confirmed'],
        required=False,
        default='paid',
    )
