"""Allowed status moves for orders and payments.

Anything not listed here is rejected with ``ConflictError``; status columns
are never assigned without going through these checks.
"""
from shopsphere.errors import ConflictError
from shopsphere.models import OrderStatus, PaymentStatus

ORDER_FLOW = [
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.IN_TRANSIT,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


def _order_transitions():
    table = {}
    for index, status in enumerate(ORDER_FLOW):
        table[status] = set(ORDER_FLOW[index + 1:])
        if status is not OrderStatus.DELIVERED:
            table[status].add(OrderStatus.CANCELLED)
    table[OrderStatus.CANCELLED] = set()
    return table


ORDER_TRANSITIONS = _order_transitions()

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.SUCCESS, PaymentStatus.FAILED},
    PaymentStatus.SUCCESS: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


def can_move_order(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


def check_order_transition(current: OrderStatus, target: OrderStatus):
    if not can_move_order(current, target):
        raise ConflictError(
            f"Cannot move order from {OrderStatus(current).value} to {OrderStatus(target).value}"
        )


def check_payment_transition(current: PaymentStatus, target: PaymentStatus):
    if PaymentStatus(target) not in PAYMENT_TRANSITIONS[PaymentStatus(current)]:
        raise ConflictError(
            f"Cannot move payment from {PaymentStatus(current).value} to {PaymentStatus(target).value}"
        )


def payment_sources(target: PaymentStatus):
    """Statuses a payment may be in for ``target`` to be applied."""
    return [status for status, allowed in PAYMENT_TRANSITIONS.items() if PaymentStatus(target) in allowed]
