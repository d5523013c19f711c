"""
Notification payload construction.

Pure functions: they turn a delivery/alert context into a structured payload
for the notification gateway and never send anything themselves.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings
from django.utils.html import escape

from delivery.models import CREDENTIAL_SEPARATOR

DELIVERY_FAILURE = 'DELIVERY_FAILURE'
INVENTORY_LOW = 'INVENTORY_LOW'
MULTIPLE_FAILURES = 'MULTIPLE_FAILURES'
EMAIL_SERVICE_DOWN = 'EMAIL_SERVICE_DOWN'
RETRY_EXHAUSTED = 'RETRY_EXHAUSTED'


class UnknownAlertType(ValueError):
    """Raised for an alert type without a payload builder."""


@dataclass
class AlertPayload:
    type: str
    subject: str
    data: dict
    html: str

    def as_dict(self) -> dict:
        return {'type': self.type, 'subject': self.subject, 'data': self.data}


@dataclass
class EmailPayload:
    to: List[str]
    subject: str
    text: str
    html: str
    metadata: dict = field(default_factory=dict)


def join_credentials(credentials: List[str]) -> str:
    return CREDENTIAL_SEPARATOR.join(credentials)


def split_credentials(text: str) -> List[str]:
    if not text:
        return []
    return text.split(CREDENTIAL_SEPARATOR)


def _rows(pairs) -> str:
    return ''.join(
        f"<p><strong>{escape(label)}:</strong> {escape(value)}</p>" for label, value in pairs
    )


def _alert_html(title: str, heading: str, rows, action_title: str, actions: List[str]) -> str:
    items = ''.join(f"<li>{escape(action)}</li>" for action in actions)
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: #d32f2f;">{escape(title)}</h2>'
        f'<div style="background-color: #ffebee; padding: 15px; border-radius: 4px;">'
        f'<h3 style="margin-top: 0;">{escape(heading)}</h3>{_rows(rows)}</div>'
        f'<div style="background-color: #fff3e0; padding: 15px; border-radius: 4px;">'
        f'<h3 style="margin-top: 0;">{escape(action_title)}</h3><ul>{items}</ul></div>'
        f'<p style="margin-top: 20px; color: #666;"><small>This is an automated alert from the '
        f'{escape(settings.STORE_NAME)} Auto-Delivery System.</small></p>'
        '</div>'
    )


def _delivery_failure(data: dict) -> AlertPayload:
    subject = f"Delivery Failure Alert - Order {data.get('order_number')}"
    html = _alert_html(
        'Delivery Failure Alert',
        'Order Details:',
        [
            ('Order Number', data.get('order_number')),
            ('Customer Email', data.get('customer_email')),
            ('Product', data.get('product_title')),
            ('Quantity', data.get('quantity')),
            ('Error', data.get('error_message')),
            ('Error Code', data.get('error_code')),
            ('Retry Count', data.get('retry_count', 0)),
        ],
        'Recommended Actions:',
        [
            'Check inventory levels for this product',
            'Verify email service configuration',
            'Review delivery logs for patterns',
            'Consider manual delivery if urgent',
        ],
    )
    return AlertPayload(DELIVERY_FAILURE, subject, data, html)


def _inventory_low(data: dict) -> AlertPayload:
    subject = f"Low Inventory Alert - {data.get('product_title')}"
    html = _alert_html(
        'Low Inventory Alert',
        'Product Details:',
        [
            ('Product', data.get('product_title')),
            ('Current Stock', f"{data.get('current_stock')} items"),
            ('Threshold', f"{data.get('threshold')} items"),
            ('Pending Orders', data.get('pending_orders', 0)),
        ],
        'Action Required:',
        ['Add more inventory items to prevent delivery failures'],
    )
    return AlertPayload(INVENTORY_LOW, subject, data, html)


def _multiple_failures(data: dict) -> AlertPayload:
    subject = 'Critical: Multiple Delivery Failures Detected'
    html = _alert_html(
        'Critical: Multiple Delivery Failures',
        'Alert Summary:',
        [
            ('Failed Deliveries', f"{data.get('failure_count')} in the last {data.get('timeframe')}"),
            ('Affected Orders', data.get('affected_orders')),
            ('Most Common Error', data.get('common_error')),
        ],
        'Immediate Actions Required:',
        [
            'Check system health and email service',
            'Review inventory levels across all products',
            'Investigate common failure patterns',
            'Consider temporarily disabling auto-delivery if needed',
        ],
    )
    return AlertPayload(MULTIPLE_FAILURES, subject, data, html)


def _email_service_down(data: dict) -> AlertPayload:
    subject = 'Email Service Failure Alert'
    html = _alert_html(
        'Email Service Failure',
        'Service Status:',
        [
            ('Error', data.get('error')),
            ('Failed Attempts', data.get('failed_attempts')),
            ('Last Attempt', data.get('last_attempt')),
        ],
        'Action Required:',
        ['Email delivery service is down. Check SMTP configuration and service status.'],
    )
    return AlertPayload(EMAIL_SERVICE_DOWN, subject, data, html)


def _retry_exhausted(data: dict) -> AlertPayload:
    subject = f"Delivery Retry Exhausted - Order {data.get('order_number')}"
    html = _alert_html(
        'Delivery Retry Exhausted',
        'Order Details:',
        [
            ('Order Number', data.get('order_number')),
            ('Customer Email', data.get('customer_email')),
            ('Product', data.get('product_title')),
            ('Total Retry Attempts', data.get('retry_count')),
            ('Last Error', data.get('last_error')),
        ],
        'Manual Intervention Required:',
        ['All automatic retry attempts have been exhausted. Manual delivery may be required.'],
    )
    return AlertPayload(RETRY_EXHAUSTED, subject, data, html)


ALERT_BUILDERS = {
    DELIVERY_FAILURE: _delivery_failure,
    INVENTORY_LOW: _inventory_low,
    MULTIPLE_FAILURES: _multiple_failures,
    EMAIL_SERVICE_DOWN: _email_service_down,
    RETRY_EXHAUSTED: _retry_exhausted,
}


def build_admin_alert(alert_type: str, data: dict) -> AlertPayload:
    """
    Build the admin alert payload for one of the known alert types.

    Raises:
        UnknownAlertType: if no builder exists for alert_type
    """
    try:
        builder = ALERT_BUILDERS[alert_type]
    except KeyError:
        raise UnknownAlertType(f"Unknown notification type: {alert_type}") from None
    return builder(dict(data))


def build_delivery_email(order, item, credentials: List[str]) -> EmailPayload:
    """Customer email carrying the credentials allocated to one line item."""
    greeting = order.customer_first_name or 'Customer'
    tracking_url = f"{settings.CLIENT_URL}/order-status/{order.order_number}"
    multiple = len(credentials) > 1

    text_blocks = [f"Account {index}:\n{credential}" for index, credential in enumerate(credentials, 1)]
    text = (
        f"Dear {greeting},\n\n"
        "Thank you for your purchase! Your digital product has been automatically delivered.\n\n"
        f"Order Number: {order.order_number}\n"
        f"Product: {item.title}\n"
        + (f"Quantity: {len(credentials)} accounts\n" if multiple else '')
        + "\nYour Account Credentials:\n\n"
        + "\n\n".join(text_blocks)
        + f"\n\nTrack your order: {tracking_url}\n\n"
        "Please save these credentials in a secure location and do not share them.\n"
    )

    html_blocks = ''.join(
        '<div style="background-color: white; padding: 15px; font-family: monospace; '
        'white-space: pre-wrap; margin-bottom: 15px;">'
        f'<h4 style="margin-top: 0;">Account {index}:</h4>{escape(credential)}</div>'
        for index, credential in enumerate(credentials, 1)
    )
    quantity_html = f"<p><strong>Quantity:</strong> {len(credentials)} accounts</p>" if multiple else ''
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #1976d2;">Your Digital Product is Ready!</h2>'
        f'<p>Dear {escape(greeting)},</p>'
        '<p>Thank you for your purchase! Your digital product has been automatically delivered.</p>'
        '<div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px;">'
        '<h3 style="margin-top: 0;">Order Details:</h3>'
        f'<p><strong>Order Number:</strong> {escape(order.order_number)}</p>'
        f'<p><strong>Product:</strong> {escape(item.title)}</p>'
        f'{quantity_html}</div>'
        '<div style="background-color: #e8f5e8; padding: 20px; border-radius: 8px;">'
        f'<h3 style="margin-top: 0;">Your Account Credentials:</h3>{html_blocks}</div>'
        f'<p><a href="{escape(tracking_url)}">Track Order</a></p>'
        f'<p>Best regards,<br>{escape(settings.STORE_NAME)} Team</p>'
        '</div>'
    )

    return EmailPayload(
        to=[order.customer_email],
        subject=f"Your {item.title} is Ready - Order {order.order_number}",
        text=text,
        html=html,
        metadata={'credentials_count': len(credentials)},
    )


def build_order_completed_email(order, message: Optional[str] = None) -> EmailPayload:
    """Customer email sent once every auto-delivery item of an order is delivered."""
    message = message or 'Your order has been completed and all items have been delivered successfully.'
    tracking_url = f"{settings.CLIENT_URL}/order-status/{order.order_number}"
    greeting = order.customer_first_name or 'Customer'
    text = (
        f"Dear {greeting},\n\n{message}\n\n"
        f"Order Number: {order.order_number}\n"
        f"Track your order: {tracking_url}\n"
    )
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #2e7d32;">Order Delivered</h2>'
        f'<p>Dear {escape(greeting)},</p><p>{escape(message)}</p>'
        f'<p><strong>Order Number:</strong> {escape(order.order_number)}</p>'
        f'<p><a href="{escape(tracking_url)}">Track Order</a></p>'
        '</div>'
    )
    return EmailPayload(
        to=[order.customer_email],
        subject=f"Order {order.order_number} Delivered",
        text=text,
        html=html,
    )
