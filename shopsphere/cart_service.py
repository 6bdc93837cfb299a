import logging

from sqlalchemy import select

from shopsphere.errors import ConflictError, NotFoundError, ValidationError
from shopsphere.models import Cart, CartItem, Product
from shopsphere.order_service import place_order
from shopsphere.stock import StockLine

logger = logging.getLogger(__name__)


def _find_cart(db, user_id: str):
    return db.execute(select(Cart).where(Cart.user_id == user_id)).scalar_one_or_none()


def _require_cart(db, user_id: str) -> Cart:
    cart = _find_cart(db, user_id)
    if cart is None:
        raise NotFoundError("Cart not found")
    return cart


def _require_item(cart: Cart, product_id: str) -> CartItem:
    for item in cart.items:
        if item.product_id == product_id:
            return item
    raise NotFoundError("Item not found in cart")


def _check_quantity(quantity):
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError("Quantity must be a positive integer")


def get_cart(db, user) -> Cart:
    return _find_cart(db, user.id)


def add_to_cart(db, user, product_id: str, quantity: int) -> Cart:
    _check_quantity(quantity)
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")

    cart = _find_cart(db, user.id)
    if cart is None:
        cart = Cart(user_id=user.id)
        db.add(cart)

    existing = next((item for item in cart.items if item.product_id == product_id), None)
    wanted = quantity + (existing.quantity if existing else 0)
    if product.stock < wanted:
        available = product.stock - (existing.quantity if existing else 0)
        raise ConflictError(f"Only {max(available, 0)} available", available=product.stock)

    if existing:
        existing.quantity = wanted
    else:
        cart.items.append(CartItem(
            product_id=product.id,
            name=product.name,
            quantity=quantity,
            price=product.price,
            image=product.image or "/default-product.jpg",
        ))
    db.commit()
    db.refresh(cart)
    return cart


def update_cart_item(db, user, product_id: str, quantity: int) -> Cart:
    _check_quantity(quantity)
    cart = _require_cart(db, user.id)
    item = _require_item(cart, product_id)

    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    if product.stock < quantity:
        raise ConflictError(
            f"Only {product.stock} available",
            available=product.stock,
            requested=quantity,
        )

    item.quantity = quantity
    db.commit()
    db.refresh(cart)
    return cart


def remove_from_cart(db, user, product_id: str) -> Cart:
    cart = _require_cart(db, user.id)
    cart.items.remove(_require_item(cart, product_id))
    db.commit()
    db.refresh(cart)
    return cart


def clear_cart(db, user) -> Cart:
    cart = _require_cart(db, user.id)
    cart.items.clear()
    db.commit()
    db.refresh(cart)
    return cart


def checkout(db, user, shipping_info: dict, tax_price: float = 0.0, shipping_price: float = 0.0):
    """Turn the cart into an order and empty it, or change nothing at all."""
    cart = _find_cart(db, user.id)
    if cart is None or not cart.items:
        raise ValidationError("Cart is empty")

    lines = [StockLine(item.product_id, item.quantity, item.name) for item in cart.items]
    try:
        order = place_order(db, user.id, lines, shipping_info, tax_price, shipping_price)
        cart.items.clear()
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Checkout for user %s created order %s", user.id, order.id)
    return order


def serialize_cart(cart: Cart) -> dict:
    items = cart.items if cart else []
    return {
        "cart_id": cart.id if cart else None,
        "total_items": sum(item.quantity for item in items),
        "total_price": round(sum(item.price * item.quantity for item in items), 2),
        "items": [
            {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "price": item.price,
                "image": item.image,
            }
            for item in items
        ],
    }
