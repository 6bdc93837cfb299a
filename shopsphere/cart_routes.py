from fastapi import APIRouter, Depends

from shopsphere import database
from shopsphere.auth import CurrentUser, get_current_user
from shopsphere.cart_service import (
    add_to_cart,
    checkout,
    clear_cart,
    get_cart,
    remove_from_cart,
    serialize_cart,
    update_cart_item,
)
from shopsphere.order_service import serialize_order
from shopsphere.schemas import CartQuantity, CheckoutRequest

router = APIRouter(prefix="/cart")


@router.get("")
def get_cart_api(user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = serialize_cart(get_cart(db, user))
    finally:
        db.close()

    message = "Cart is empty" if not data["items"] else "Cart retrieved successfully"
    return {"status": "success", "message": message, "data": data}


@router.delete("")
def clear_cart_api(user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = serialize_cart(clear_cart(db, user))
    finally:
        db.close()

    return {"status": "success", "message": "Cart cleared", "data": data}


@router.post("/checkout")
def checkout_api(request: CheckoutRequest, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        order = checkout(db, user, request.shipping_info.model_dump(), request.tax_price, request.shipping_price)
        data = serialize_order(order)
    finally:
        db.close()

    return {"status": "success", "message": "Checkout completed successfully", "data": data}


@router.post("/{product_id}")
def add_to_cart_api(product_id: str, request: CartQuantity, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = serialize_cart(add_to_cart(db, user, product_id, request.quantity))
    finally:
        db.close()

    return {"status": "success", "message": "Added to cart", "data": data}


@router.put("/{product_id}")
def update_cart_api(product_id: str, request: CartQuantity, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = serialize_cart(update_cart_item(db, user, product_id, request.quantity))
    finally:
        db.close()

    return {"status": "success", "message": "Cart updated successfully", "data": data}


@router.delete("/{product_id}")
def remove_from_cart_api(product_id: str, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = serialize_cart(remove_from_cart(db, user, product_id))
    finally:
        db.close()

    return {"status": "success", "message": "Item removed", "data": data}
