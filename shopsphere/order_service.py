import logging

from sqlalchemy import func, select

from shopsphere.errors import AuthorizationError, ConflictError, NotFoundError
from shopsphere.models import Order, OrderItem, OrderStatus, utcnow
from shopsphere.stock import ensure_stock
from shopsphere.transitions import check_order_transition

logger = logging.getLogger(__name__)


def place_order(db, user_id: str, lines, shipping_info: dict, tax_price: float = 0.0,
                shipping_price: float = 0.0) -> Order:
    """Build an order from ``StockLine``s after the stock guard passes.

    Item name, price and image are copied from the product as it is now.
    Nothing is committed and no stock is touched; stock moves when the order
    is paid.
    """
    products = ensure_stock(db, lines)

    order = Order(
        user_id=user_id,
        shipping_info=shipping_info,
        tax_price=tax_price,
        shipping_price=shipping_price,
        status=OrderStatus.PROCESSING,
    )
    for position, line in enumerate(lines):
        product = products[line.product_id]
        order.items.append(OrderItem(
            product_id=product.id,
            position=position,
            name=product.name,
            quantity=line.quantity,
            price=product.price,
            image=product.image or "/default-product.jpg",
        ))
    order.items_price = round(sum(item.price * item.quantity for item in order.items), 2)
    order.total_price = round(order.items_price + tax_price + shipping_price, 2)

    db.add(order)
    db.flush()
    return order


def create_order(db, user, lines, shipping_info: dict, tax_price: float = 0.0,
                 shipping_price: float = 0.0) -> Order:
    order = place_order(db, user.id, lines, shipping_info, tax_price, shipping_price)
    db.commit()
    db.refresh(order)
    logger.info("Order %s created for user %s (%s items)", order.id, user.id, len(order.items))
    return order


def list_orders(db, user) -> list:
    query = select(Order).order_by(Order.created_at.desc())
    if not user.is_admin:
        query = query.where(Order.user_id == user.id)
    return db.execute(query).scalars().all()


def get_order(db, user, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if order is None or (order.user_id != user.id and not user.is_admin):
        raise NotFoundError("Order not found or unauthorized")
    return order


def update_order_status(db, order_id: str, status: OrderStatus = None, tracking_number: str = None,
                        courier: str = None) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    if status is not None and status != order.status:
        check_order_transition(order.status, status)
        order.status = status
        if status == OrderStatus.DELIVERED:
            order.delivered_at = utcnow()
    order.tracking_number = tracking_number or order.tracking_number
    order.courier = courier or order.courier

    db.commit()
    db.refresh(order)
    return order


def cancel_order(db, user, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.user_id != user.id and not user.is_admin:
        raise AuthorizationError("Unauthorized")
    if order.status == OrderStatus.DELIVERED:
        raise ConflictError("Cannot cancel delivered order")
    if order.status == OrderStatus.CANCELLED:
        return order

    check_order_transition(order.status, OrderStatus.CANCELLED)
    order.status = OrderStatus.CANCELLED
    db.commit()
    db.refresh(order)
    logger.info("Order %s cancelled by %s", order.id, user.id)
    return order


def order_stats(db, user) -> dict:
    scope = [] if user.is_admin else [Order.user_id == user.id]

    total, revenue, average = db.execute(
        select(func.count(Order.id), func.sum(Order.total_price), func.avg(Order.total_price)).where(*scope)
    ).one()

    by_status = {
        status.value: {"count": count, "revenue": status_revenue or 0}
        for status, count, status_revenue in db.execute(
            select(Order.status, func.count(Order.id), func.sum(Order.total_price))
            .where(*scope)
            .group_by(Order.status)
        ).all()
    }

    recent = db.execute(
        select(Order).where(*scope).order_by(Order.created_at.desc()).limit(5)
    ).scalars().all()

    return {
        "summary": {
            "total_orders": total or 0,
            "total_revenue": revenue or 0,
            "avg_order_value": average or 0,
        },
        "by_status": by_status,
        "recent_orders": [
            {
                "id": order.id,
                "total_price": order.total_price,
                "status": order.status.value,
                "created_at": order.created_at.isoformat(),
            }
            for order in recent
        ],
    }


def serialize_order(order: Order) -> dict:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "items": [
            {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "price": item.price,
                "image": item.image,
            }
            for item in order.items
        ],
        "shipping_info": order.shipping_info,
        "payment_info": order.payment_info,
        "items_price": order.items_price,
        "tax_price": order.tax_price,
        "shipping_price": order.shipping_price,
        "total_price": order.total_price,
        "status": order.status.value,
        "is_paid": order.is_paid,
        "paid_at": order.paid_at.isoformat() if order.paid_at else None,
        "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
        "tracking_number": order.tracking_number,
        "courier": order.courier,
        "created_at": order.created_at.isoformat(),
    }
