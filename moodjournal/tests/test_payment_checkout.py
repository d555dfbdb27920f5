"""
Tests for premium checkout creation, status sync and cancellation.

The gateway is mocked at the service's get_gateway seam.
"""
from datetime import datetime, timedelta, timezone
from itertools import count
from unittest.mock import MagicMock, patch

import pytest

from moodjournal.core.errors import (
    GatewayCommunicationError,
    PaymentAlreadyTerminalError,
    PaymentNotFoundError,
    PaymentsDisabledError,
)
from moodjournal.features.payments.provider import CheckoutLink
from moodjournal.features.payments.service import (
    cancel_payment,
    get_gateway,
    get_payment,
    list_payments,
    revenue_stats,
    start_premium_checkout,
    sync_payment_status,
)
from moodjournal.features.users.service import get_user

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def _mock_gateway(status="pending"):
    codes = count(1)
    gateway = MagicMock()
    gateway.name = "payos"
    gateway.new_order_code.side_effect = lambda now: f"10{next(codes)}"
    gateway.create_checkout.side_effect = lambda order_code, amount, description, **kw: CheckoutLink(
        checkout_url=f"https://pay.payos.vn/web/{order_code}", correlation_key=order_code
    )
    gateway.get_status.return_value = status
    return gateway


@pytest.fixture
def gateway():
    gw = _mock_gateway()
    with patch("moodjournal.features.payments.service.get_gateway", return_value=gw):
        yield gw


class TestStartCheckout:
    def test_creates_pending_payment(self, make_user, gateway):
        user = make_user("user_1")
        result = start_premium_checkout(user, "payos", now=T0)

        payment = result.payment
        assert result.reused is False
        assert payment.status == "pending"
        assert payment.amount == 41000
        assert payment.payment_url == "https://pay.payos.vn/web/101"
        assert payment.payment_timeout == T0 + timedelta(minutes=15)
        assert get_payment(payment.id).gateway_order_code == "101"

    def test_reuses_live_pending_checkout(self, make_user, gateway):
        user = make_user("user_1")
        first = start_premium_checkout(user, "payos", now=T0)
        second = start_premium_checkout(user, "payos", now=T0 + timedelta(minutes=5))

        assert second.reused is True
        assert second.payment.id == first.payment.id
        assert gateway.create_checkout.call_count == 1

    def test_expired_checkout_is_replaced(self, make_user, gateway):
        user = make_user("user_1")
        first = start_premium_checkout(user, "payos", now=T0)
        second = start_premium_checkout(user, "payos", now=T0 + timedelta(minutes=16))

        assert second.reused is False
        assert second.payment.id != first.payment.id
        assert get_payment(first.payment.id).status == "expired"

    def test_paid_existing_checkout_is_returned_without_new_one(self, make_user, gateway):
        user = make_user("user_1")
        first = start_premium_checkout(user, "payos", now=T0)
        gateway.get_status.return_value = "paid"

        second = start_premium_checkout(user, "payos", now=T0 + timedelta(minutes=5))

        assert second.reused is True
        assert second.payment.id == first.payment.id
        assert second.payment.status == "success"
        assert gateway.create_checkout.call_count == 1
        assert get_user("user_1").plan == "premium"

    def test_gateway_error_leaves_existing_checkout_pending(self, make_user, gateway):
        user = make_user("user_1")
        first = start_premium_checkout(user, "payos", now=T0)
        gateway.get_status.side_effect = GatewayCommunicationError("gateway down")

        with pytest.raises(GatewayCommunicationError) as exc:
            start_premium_checkout(user, "payos", now=T0 + timedelta(minutes=20))

        assert exc.value.status_code == 503
        assert exc.value.retryable is True
        assert get_payment(first.payment.id).status == "pending"

    def test_create_failure_writes_nothing(self, make_user, gateway):
        user = make_user("user_1")
        gateway.create_checkout.side_effect = GatewayCommunicationError("gateway down")

        with pytest.raises(GatewayCommunicationError):
            start_premium_checkout(user, "payos", now=T0)

        assert list_payments(user_id="user_1")[1] == 0


class TestGatewayConfig:
    def test_unconfigured_gateway_is_disabled(self):
        with pytest.raises(PaymentsDisabledError):
            get_gateway("payos")

    def test_configured_gateway_builds(self, payos_settings, vnpay_settings):
        assert get_gateway("payos").name == "payos"
        assert get_gateway("vnpay").name == "vnpay"


class TestSyncAndCancel:
    def test_sync_applies_paid_status(self, make_user, gateway):
        user = make_user("user_1")
        payment = start_premium_checkout(user, "payos", now=T0).payment
        gateway.get_status.return_value = "paid"

        synced = sync_payment_status(user, payment.id, now=T0 + timedelta(minutes=3))

        assert synced.status == "success"
        assert get_user("user_1").plan == "premium"

    def test_sync_maps_gateway_cancel_to_failed(self, make_user, gateway):
        user = make_user("user_1")
        payment = start_premium_checkout(user, "payos", now=T0).payment
        gateway.get_status.return_value = "cancelled"

        assert sync_payment_status(user, payment.id, now=T0).status == "failed"
        assert get_user("user_1").plan == "free"

    def test_sync_other_users_payment_is_not_found(self, make_user, gateway):
        owner = make_user("user_1")
        other = make_user("user_2")
        payment = start_premium_checkout(owner, "payos", now=T0).payment

        with pytest.raises(PaymentNotFoundError):
            sync_payment_status(other, payment.id)

    def test_cancel_pending(self, make_user, gateway):
        user = make_user("user_1")
        payment = start_premium_checkout(user, "payos", now=T0).payment

        cancelled = cancel_payment(user, payment.id, now=T0 + timedelta(minutes=1))

        assert cancelled.status == "failed"
        assert cancelled.cancelled_at == T0 + timedelta(minutes=1)
        with pytest.raises(PaymentAlreadyTerminalError):
            cancel_payment(user, payment.id)


class TestAdminQueries:
    def test_revenue_stats(self, make_user, make_payment):
        make_user("user_1")
        make_user("user_2")
        make_payment("user_1", order_code="A", status="success")
        make_payment("user_2", order_code="B", status="success")
        make_payment("user_2", order_code="C", status="failed")

        stats = revenue_stats(T0)
        assert stats["successful_payments"] == 2
        assert stats["total_revenue"] == 82000
        assert stats["average_revenue_per_payment"] == 41000

    def test_list_payments_filters_by_status(self, make_user, make_payment):
        make_user("user_1")
        make_payment("user_1", order_code="A", status="success")
        make_payment("user_1", order_code="B", status="failed")

        items, total = list_payments(status="failed")
        assert total == 1
        assert items[0].gateway_order_code == "B"
