import pytest

from shopsphere.errors import ConflictError
from shopsphere.models import OrderStatus, PaymentStatus
from shopsphere.transitions import (
    ORDER_FLOW,
    can_move_order,
    check_order_transition,
    check_payment_transition,
    payment_sources,
)


@pytest.mark.parametrize("current", list(OrderStatus))
def test_cancellation_is_allowed_unless_finished(current):
    allowed = can_move_order(current, OrderStatus.CANCELLED)
    assert allowed == (current not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED))


def test_orders_only_move_forward():
    for index, current in enumerate(ORDER_FLOW):
        for target in ORDER_FLOW:
            assert can_move_order(current, target) == (ORDER_FLOW.index(target) > index)


@pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
def test_terminal_order_states(terminal):
    for target in OrderStatus:
        with pytest.raises(ConflictError):
            check_order_transition(terminal, target)


def test_order_transition_accepts_plain_strings():
    check_order_transition("Processing", "Out for Delivery")
    with pytest.raises(ConflictError):
        check_order_transition("Delivered", "Processing")


def test_payment_transitions():
    check_payment_transition(PaymentStatus.PENDING, PaymentStatus.SUCCESS)
    check_payment_transition(PaymentStatus.PENDING, PaymentStatus.FAILED)
    check_payment_transition(PaymentStatus.SUCCESS, PaymentStatus.REFUNDED)
    for current, target in [
        (PaymentStatus.SUCCESS, PaymentStatus.PENDING),
        (PaymentStatus.SUCCESS, PaymentStatus.FAILED),
        (PaymentStatus.FAILED, PaymentStatus.SUCCESS),
        (PaymentStatus.REFUNDED, PaymentStatus.SUCCESS),
    ]:
        with pytest.raises(ConflictError):
            check_payment_transition(current, target)


def test_payment_sources():
    assert payment_sources(PaymentStatus.SUCCESS) == [PaymentStatus.PENDING]
    assert payment_sources(PaymentStatus.FAILED) == [PaymentStatus.PENDING]
    assert payment_sources(PaymentStatus.PENDING) == []
