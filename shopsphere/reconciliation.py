"""Apply a payment's final outcome to the payment, its order and product stock.

Synchronous verification and the processor webhook both land in
:func:`reconcile`. The only guard against double application is the
compare-and-swap on ``payments.status``: the request whose UPDATE moves the row
out of ``pending`` owns the side effects, everyone else reads back what the
winner recorded. Order payment and stock decrements are committed in the same
transaction as the status change; out-of-stock alerts go out after commit.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select, update

from shopsphere.errors import NotFoundError
from shopsphere.models import (
    Order,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Product,
    Store,
    utcnow,
)
from shopsphere.notifications import notify_out_of_stock
from shopsphere.paystack_service import normalize_reference
from shopsphere.transitions import payment_sources

logger = logging.getLogger(__name__)

SOURCE_VERIFY = "verify"
SOURCE_WEBHOOK = "webhook"

CHANNEL_METHODS = {
    "card": PaymentMethod.CARD,
    "bank": PaymentMethod.BANK_TRANSFER,
    "bank_transfer": PaymentMethod.BANK_TRANSFER,
    "dedicated_nuban": PaymentMethod.BANK_TRANSFER,
    "mobile_money": PaymentMethod.MOBILE_MONEY,
    "ussd": PaymentMethod.USSD,
}


@dataclass
class DepletedProduct:
    product_id: str
    name: str
    stock: int
    store_name: str
    owner_email: str


@dataclass
class ReconciliationResult:
    payment: Payment
    applied: bool
    order_status: Optional[OrderStatus] = None
    depleted: List[DepletedProduct] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.payment.status == PaymentStatus.SUCCESS


def method_for_channel(channel: Optional[str]) -> PaymentMethod:
    return CHANNEL_METHODS.get((channel or "").lower(), PaymentMethod.CARD)


def failure_reason(gateway_data: dict) -> str:
    status = gateway_data.get("status")
    if status == "abandoned":
        return "User abandoned payment"
    if status == "failed":
        return gateway_data.get("gateway_response") or "Payment failed"
    return f"Unexpected status: {status}"


def find_payment(db, reference: str) -> Payment:
    payment = db.execute(
        select(Payment).where(Payment.transaction_reference == normalize_reference(reference))
    ).scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment record not found", reference=reference)
    return payment


def recorded_result(db, payment: Payment) -> ReconciliationResult:
    """What an earlier reconciliation left behind, without touching anything."""
    order = db.get(Order, payment.order_id)
    return ReconciliationResult(
        payment=payment,
        applied=False,
        order_status=order.status if order else None,
    )


def reconcile(db, reference: str, gateway_data: dict, source: str = SOURCE_VERIFY) -> ReconciliationResult:
    """Single entry point for both verification paths.

    ``gateway_data`` is the processor's transaction object (``status``,
    ``channel``, ``authorization``, ``amount`` in minor units, ...).
    """
    payment = find_payment(db, reference)
    if gateway_data.get("status") == "success":
        return apply_success(db, payment, gateway_data, source)
    return apply_failure(db, payment, failure_reason(gateway_data), gateway_data, source)


def _claim(db, payment: Payment, target: PaymentStatus, values: dict) -> bool:
    values = dict(values)
    values[Payment.status] = target
    claimed = db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status.in_(payment_sources(target)))
        .values(values)
        .execution_options(synchronize_session=False)
    )
    return claimed.rowcount == 1


def _already_applied(db, payment: Payment, target: PaymentStatus, source: str) -> ReconciliationResult:
    db.rollback()
    db.refresh(payment)
    if payment.status != target:
        logger.warning(
            "Payment %s is %s, ignoring %s outcome from %s",
            payment.transaction_reference, payment.status.value, target.value, source,
        )
    else:
        logger.info("Payment %s already %s, skipping duplicate from %s",
                    payment.transaction_reference, target.value, source)
    return recorded_result(db, payment)


def apply_success(db, payment: Payment, gateway_data: dict, source: str) -> ReconciliationResult:
    now = utcnow()
    reference = payment.transaction_reference
    authorization = gateway_data.get("authorization") or {}
    channel = gateway_data.get("channel")

    details = dict(payment.details or {})
    details.update({
        "verified_at": now.isoformat(),
        "verified_by": source,
        "paystack_data": gateway_data,
    })

    try:
        won = _claim(db, payment, PaymentStatus.SUCCESS, {
            Payment.paid_at: now,
            Payment.authorization_code: authorization.get("authorization_code"),
            Payment.method: method_for_channel(channel),
            Payment.details: details,
        })
        if not won:
            return _already_applied(db, payment, PaymentStatus.SUCCESS, source)

        order_status, depleted = _settle_order(db, payment.order_id, reference, gateway_data, channel, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    logger.info("Payment %s reconciled as success via %s", reference, source)
    _send_alerts(depleted)
    return ReconciliationResult(payment=payment, applied=True, order_status=order_status, depleted=depleted)


def _settle_order(db, order_id, reference, gateway_data, channel, now):
    order = db.get(Order, order_id)
    if order is None:
        logger.warning("Order %s for payment %s no longer exists", order_id, reference)
        return None, []
    if order.status == OrderStatus.CANCELLED:
        logger.warning("Payment %s succeeded for cancelled order %s; stock untouched", reference, order.id)
        return order.status, []

    payment_info = {
        "id": reference,
        "status": PaymentStatus.SUCCESS.value,
        "reference": reference,
        "channel": channel,
        "amount": (gateway_data.get("amount") or 0) / 100,
    }
    # an order pays for its stock once, whichever of its payments lands first
    marked = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.is_paid.is_(False), Order.status != OrderStatus.CANCELLED)
        .values({Order.is_paid: True, Order.paid_at: now, Order.payment_info: payment_info})
        .execution_options(synchronize_session=False)
    )
    if marked.rowcount != 1:
        logger.warning("Order %s already paid; payment %s left without stock effect", order.id, reference)
        return order.status, []

    product_ids = []
    for item in order.items:
        decremented = db.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values({Product.stock: Product.stock - item.quantity})
            .execution_options(synchronize_session=False)
        )
        if decremented.rowcount != 1:
            logger.warning("Product %s on order %s no longer exists", item.product_id, order.id)
            continue
        product_ids.append(item.product_id)

    depleted = []
    if product_ids:
        rows = db.execute(
            select(Product.id, Product.name, Product.stock, Store.name, Store.owner_email)
            .join(Store, Product.store_id == Store.id)
            .where(Product.id.in_(product_ids), Product.stock <= 0)
        ).all()
        depleted = [DepletedProduct(*row) for row in rows]
    db.refresh(order)
    return order.status, depleted


def _send_alerts(depleted):
    for product in depleted:
        logger.info("Product %s is out of stock (%s left)", product.product_id, product.stock)
        try:
            notify_out_of_stock(product.name, product.store_name, product.owner_email, product.stock)
        except Exception:
            logger.exception("Out-of-stock alert for product %s failed", product.product_id)


def apply_failure(db, payment: Payment, reason: str, gateway_data: dict, source: str) -> ReconciliationResult:
    """Record a terminal failure. The order is left as it is."""
    details = dict(payment.details or {})
    details.update({
        "failure_reason": reason,
        "paystack_status": gateway_data.get("status"),
        "paystack_data": gateway_data,
        "last_verification_attempt": utcnow().isoformat(),
    })
    try:
        if not _claim(db, payment, PaymentStatus.FAILED, {Payment.details: details}):
            return _already_applied(db, payment, PaymentStatus.FAILED, source)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    logger.info("Payment %s reconciled as failed via %s: %s", payment.transaction_reference, source, reason)
    result = recorded_result(db, payment)
    result.applied = True
    return result


def record_verification_error(db, reference: str, message: str):
    """Annotate a still-pending payment after the processor could not be asked."""
    payment = db.execute(
        select(Payment).where(Payment.transaction_reference == normalize_reference(reference))
    ).scalar_one_or_none()
    if payment is None or payment.status != PaymentStatus.PENDING:
        return
    details = dict(payment.details or {})
    details["last_verification_error"] = message
    details["last_verification_attempt"] = utcnow().isoformat()
    details["verification_attempts"] = details.get("verification_attempts", 0) + 1
    payment.details = details
    db.commit()
