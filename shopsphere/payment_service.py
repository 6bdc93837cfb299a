import logging
import os
import time

from sqlalchemy import select

from shopsphere.config import CURRENCY
from shopsphere.errors import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from shopsphere.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus, utcnow
from shopsphere.paystack_service import (
    charge_authorization,
    initialize_transaction,
    normalize_reference,
    verify_transaction,
)
from shopsphere.reconciliation import (
    SOURCE_VERIFY,
    find_payment,
    reconcile,
    record_verification_error,
    recorded_result,
)
from shopsphere.stock import StockLine, ensure_stock

logger = logging.getLogger(__name__)


def _owns(user, owner_id) -> bool:
    return owner_id == user.id or user.is_admin


def _callback_url() -> str:
    """Where Paystack sends the payer's browser after checkout.

    That page belongs to the storefront, which then calls ``GET /payments/verify``
    with the buyer's token.
    """
    callback_url = os.getenv("PAYMENT_CALLBACK_URL")
    if callback_url:
        return callback_url
    app_url = os.getenv("APP_URL")
    if not app_url:
        raise ConfigurationError("APP_URL not configured")
    return f"{app_url.rstrip('/')}/payment/callback"


def initiate_payment(db, user, order_id: str, save_card: bool = False) -> dict:
    callback_url = _callback_url()

    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if not _owns(user, order.user_id):
        raise AuthorizationError("Unauthorized")
    if order.status == OrderStatus.CANCELLED:
        raise ConflictError("Order cancelled")
    if order.is_paid:
        raise ConflictError("Order already paid")

    # one open transaction per order, same as asking twice
    existing = db.execute(
        select(Payment)
        .where(Payment.order_id == order.id, Payment.status == PaymentStatus.PENDING)
        .order_by(Payment.created_at.desc())
    ).scalars().first()
    if existing:
        return _initiation(existing)

    ensure_stock(db, [StockLine(item.product_id, item.quantity, item.name) for item in order.items])

    data = initialize_transaction(
        user.email,
        order.total_price,
        {"order_id": order.id, "user_id": user.id},
        callback_url,
    )
    payment = Payment(
        order_id=order.id,
        user_id=user.id,
        email=user.email,
        amount=order.total_price,
        currency=CURRENCY,
        method=PaymentMethod.CARD,
        status=PaymentStatus.PENDING,
        transaction_reference=normalize_reference(data["reference"]),
        details={
            "order_items": [
                {"product_id": item.product_id, "quantity": item.quantity, "price": item.price}
                for item in order.items
            ],
            "save_card": bool(save_card),
            "paystack_initialization": data,
        },
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)

    logger.info(
        "Payment initialized: payment=%s reference=%s amount=%s",
        payment.id, payment.transaction_reference, payment.amount,
    )
    return _initiation(payment)


def _initiation(payment: Payment) -> dict:
    init = (payment.details or {}).get("paystack_initialization") or {}
    return {
        "payment_id": payment.id,
        "authorization_url": init.get("authorization_url"),
        "access_code": init.get("access_code"),
        "reference": payment.transaction_reference,
        "save_card": bool((payment.details or {}).get("save_card")),
    }


def verify_payment(db, user, reference: str):
    """Synchronous verification. Returns a ``ReconciliationResult``.

    Accepts the stored ``ref_`` form or the bare reference Paystack appends to
    the callback redirect.
    """
    if not reference or not reference.strip():
        raise ValidationError("Invalid reference format", example="ref_123456789", received=reference)
    reference = normalize_reference(reference.strip())

    payment = find_payment(db, reference)
    if not _owns(user, payment.user_id):
        raise AuthorizationError("Unauthorized")
    if payment.status != PaymentStatus.PENDING:
        return recorded_result(db, payment)

    try:
        gateway_data = verify_transaction(reference)
    except (UpstreamError, NotFoundError) as exc:
        logger.error("Payment verification error for %s: %s", reference, exc.message)
        record_verification_error(db, reference, exc.message)
        raise

    return reconcile(db, reference, gateway_data, source=SOURCE_VERIFY)


def serialize_verification(result) -> dict:
    payment = result.payment
    return {
        "payment_id": payment.id,
        "reference": payment.transaction_reference,
        "payment_status": payment.status.value,
        "amount": payment.amount,
        "method": payment.method.value,
        "authorization_code": payment.authorization_code,
        "order_status": result.order_status.value if result.order_status else None,
        "verified_at": payment.paid_at.isoformat() if payment.paid_at else None,
        "from_cache": not result.applied,
    }


def charge_saved_card(db, user, payment_id: str, amount) -> Payment:
    """Charge the card behind an earlier successful payment again.

    The new payment is recorded whether the processor accepts or declines it.
    """
    if amount is None or amount <= 0:
        raise ValidationError("Valid amount required")

    original = db.get(Payment, payment_id)
    if original is None:
        raise NotFoundError("Payment not found", payment_id=payment_id)
    if original.status != PaymentStatus.SUCCESS or not original.authorization_code:
        raise NotFoundError("Payment missing authorization code or not verified", payment_id=payment_id)
    if not _owns(user, original.user_id):
        raise AuthorizationError("Unauthorized")

    reference = f"recur_{int(time.time() * 1000)}_{original.id}"
    body = charge_authorization(
        original.email,
        amount,
        original.authorization_code,
        reference,
        {"original_payment": original.id, "user": user.id},
    )
    data = body.get("data") or {}
    succeeded = body.get("status") is True and data.get("status") == "success"

    payment = Payment(
        order_id=original.order_id,
        user_id=original.user_id,
        email=original.email,
        amount=amount,
        currency=CURRENCY,
        method=PaymentMethod.CARD,
        status=PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED,
        transaction_reference=data.get("reference") or reference,
        authorization_code=original.authorization_code if succeeded else None,
        paid_at=utcnow() if succeeded else None,
        details={
            "recurring": True,
            "parent_payment": original.id,
            "paystack_response": body,
            **({} if succeeded else {"failure_reason": body.get("message") or "Charge failed"}),
        },
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    logger.info("Saved-card charge %s for payment %s: %s", payment.transaction_reference, original.id, payment.status.value)
    return payment


def payment_history(db, user) -> list:
    payments = db.execute(
        select(Payment).where(Payment.user_id == user.id).order_by(Payment.created_at.desc())
    ).scalars().all()
    return [
        {
            "id": payment.id,
            "amount": payment.amount,
            "status": payment.status.value,
            "method": payment.method.value,
            "reference": payment.transaction_reference,
            "date": payment.created_at.isoformat(),
            "order": {"id": payment.order.id, "status": payment.order.status.value} if payment.order else None,
        }
        for payment in payments
    ]
