"""
Notification gateway: admin alerts and customer delivery emails.

Every entry point here is best-effort. Failures are logged (and, for
customer emails, recorded in the audit log) but never raised to the caller.
"""
import json
import logging
import smtplib
from typing import List

import httpx
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.utils import timezone

from delivery.models import DeliveryLog
from delivery.services.audit import log_delivery_event
from delivery.services.notifications import (
    EMAIL_SERVICE_DOWN,
    EmailPayload,
    UnknownAlertType,
    build_admin_alert,
    build_delivery_email,
    build_order_completed_email,
)

logger = logging.getLogger(__name__)

MAIL_ERRORS = (smtplib.SMTPException, OSError)


def _format_response(response: httpx.Response) -> str:
    """Return a readable response string (pretty JSON if possible)."""
    try:
        data = response.json()
        return json.dumps(data, indent=2, ensure_ascii=False)
    except (ValueError, TypeError):
        return response.text


def _send_email(payload: EmailPayload) -> None:
    message = EmailMultiAlternatives(
        subject=payload.subject,
        body=payload.text,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=payload.to,
    )
    message.attach_alternative(payload.html, 'text/html')
    message.send(fail_silently=False)


def post_alert_webhook(payload: dict) -> httpx.Response:
    """
    POST an alert payload to the configured alert webhook.

    Raises:
        httpx.HTTPError: On network/timeout errors
    """
    url = settings.ALERT_WEBHOOK_URL
    headers = {'Content-Type': 'application/json'}
    if settings.ALERT_WEBHOOK_TOKEN:
        headers['Authorization'] = f'{settings.ALERT_WEBHOOK_TOKEN}'

    logger.info(f"Sending alert to webhook: {url}")
    logger.debug(f"Payload: {payload}")

    try:
        response = httpx.post(url, json=payload, headers=headers, timeout=10.0)
        logger.info(f"Alert webhook response: {response.status_code}")
        logger.debug("Alert webhook response body:\n%s", _format_response(response))
        return response
    except httpx.TimeoutException as e:
        logger.error(f"Timeout sending alert webhook: {e}")
        raise
    except httpx.HTTPError as e:
        logger.error(f"HTTP error sending alert webhook: {e}")
        raise


def alert_channels_configured() -> bool:
    return bool(settings.ADMIN_EMAIL or settings.ALERT_WEBHOOK_URL)


def send_admin_alert(alert_type: str, data: dict) -> bool:
    """
    Dispatch an admin alert by email and, when configured, to the alert webhook.

    Returns True when at least one channel accepted the alert. Never raises.
    """
    try:
        alert = build_admin_alert(alert_type, data)
    except UnknownAlertType as e:
        logger.warning(str(e))
        return False
    except Exception:
        logger.exception(f"Could not build admin alert {alert_type}")
        return False

    delivered = False

    if settings.ADMIN_EMAIL:
        try:
            _send_email(EmailPayload(
                to=[settings.ADMIN_EMAIL],
                subject=alert.subject,
                text=json.dumps(alert.data, indent=2, default=str),
                html=alert.html,
            ))
            delivered = True
            logger.info(f"Admin notification sent: {alert_type}")
        except MAIL_ERRORS as e:
            logger.error(f"Failed to send admin notification {alert_type}: {e}")
        except Exception:
            logger.exception(f"Unexpected error sending admin notification {alert_type}")
    else:
        logger.info(f"Admin email not configured, skipping email for {alert_type}")

    if settings.ALERT_WEBHOOK_URL:
        try:
            response = post_alert_webhook(alert.as_dict())
            if 200 <= response.status_code < 300:
                delivered = True
            else:
                logger.warning(f"Alert webhook rejected {alert_type}: {response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"Alert webhook unreachable for {alert_type}: {e}")
        except Exception:
            # httpx.InvalidURL is not an HTTPError
            logger.exception(f"Alert webhook failed for {alert_type}")

    return delivered


def _log_email_event(order, item, event_type, status, message, **extra):
    log_delivery_event(
        order=order,
        order_number=order.order_number,
        product=item.product,
        product_title=item.product.title,
        customer_email=order.customer_email,
        event_type=event_type,
        status=status,
        message=message,
        quantity=item.quantity,
        **extra,
    )


def send_customer_delivery_email(order, item, credentials: List[str]) -> bool:
    """
    Email the allocated credentials to the customer.

    Outcome is written to the audit log as email_sent / email_failed; a
    failure also raises an EMAIL_SERVICE_DOWN alert. Never raises.
    """
    try:
        payload = build_delivery_email(order, item, credentials)
        _send_email(payload)
    except Exception as e:
        if isinstance(e, MAIL_ERRORS):
            logger.error(f"Error sending delivery email for order {order.order_number}: {e}")
        else:
            logger.exception(f"Unexpected error sending delivery email for order {order.order_number}")
        _log_email_event(
            order, item,
            DeliveryLog.EventType.EMAIL_FAILED,
            DeliveryLog.Status.ERROR,
            f"Failed to send delivery email: {e}",
            error_code='EMAIL_SEND_FAILED',
            details={'error': str(e), 'email_to': order.customer_email},
        )
        send_admin_alert(EMAIL_SERVICE_DOWN, {
            'error': str(e),
            'failed_attempts': 1,
            'last_attempt': timezone.now().isoformat(),
        })
        return False

    logger.info(f"Delivery email sent to {order.customer_email} for order {order.order_number}")
    _log_email_event(
        order, item,
        DeliveryLog.EventType.EMAIL_SENT,
        DeliveryLog.Status.SUCCESS,
        f"Delivery email sent successfully to {order.customer_email}",
        details={
            'email_to': order.customer_email,
            'subject': payload.subject,
            'credentials_count': len(credentials),
        },
    )
    return True


def send_order_completed_email(order) -> bool:
    """Tell the customer the whole order is delivered. Never raises."""
    try:
        _send_email(build_order_completed_email(order))
    except MAIL_ERRORS as e:
        logger.error(f"Failed to send order completion email for {order.order_number}: {e}")
        return False
    except Exception:
        logger.exception(f"Unexpected error sending order completion email for {order.order_number}")
        return False
    return True
