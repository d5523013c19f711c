"""
Unit tests for payment confirmation.
"""
import pytest
from unittest.mock import patch

from delivery.models import Order
from delivery.services.payments import confirm_payment


@pytest.mark.django_db
class TestConfirmPayment:
    """Tests for confirm_payment function."""

    def test_marks_paid_and_delivers(self, product, make_credentials, make_order):
        make_credentials(product, count=1)
        order = make_order(items=[(product, 1)], payment_status='pending')

        result = confirm_payment(order.id)

        assert result['success'] is True
        order.refresh_from_db()
        assert order.payment_status == Order.PaymentStatus.PAID
        assert order.paid_at is not None
        assert order.status == Order.Status.DELIVERED

    @patch('delivery.services.payments.process_auto_delivery')
    def test_pending_order_moves_to_confirmed(self, mock_process, product, make_order):
        mock_process.return_value = {'success': True}
        order = make_order(items=[(product, 1)], payment_status='pending')

        confirm_payment(order.id, 'confirmed')

        order.refresh_from_db()
        assert order.payment_status == Order.PaymentStatus.CONFIRMED
        assert order.status == Order.Status.CONFIRMED
        mock_process.assert_called_once_with(order.id)

    @patch('delivery.services.payments.process_auto_delivery')
    def test_repeated_confirmation_keeps_paid_at(self, mock_process, product, make_order):
        mock_process.return_value = {'success': True}
        order = make_order(items=[(product, 1)], payment_status='pending')
        confirm_payment(order.id)
        order.refresh_from_db()
        first_paid_at = order.paid_at

        confirm_payment(order.id)

        order.refresh_from_db()
        assert order.paid_at == first_paid_at
        assert mock_process.call_count == 2

    def test_non_paid_status_is_rejected(self, product, make_order):
        order = make_order(items=[(product, 1)], payment_status='pending')

        with pytest.raises(ValueError):
            confirm_payment(order.id, 'refunded')

        order.refresh_from_db()
        assert order.payment_status == Order.PaymentStatus.PENDING

    def test_unknown_order_raises(self, db):
        with pytest.raises(Order.DoesNotExist):
            confirm_payment(404404)
