from fastapi import APIRouter, Depends

from shopsphere import database
from shopsphere.auth import CurrentUser, get_current_user, require_admin
from shopsphere.order_service import (
    cancel_order,
    create_order,
    get_order,
    list_orders,
    order_stats,
    serialize_order,
    update_order_status,
)
from shopsphere.schemas import OrderRequest, StatusUpdateRequest

router = APIRouter(prefix="/orders")


@router.post("", status_code=201)
def create_order_api(request: OrderRequest, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        order = create_order(
            db,
            user,
            request.stock_lines(),
            request.shipping_info.model_dump(),
            request.tax_price,
            request.shipping_price,
        )
        data = serialize_order(order)
    finally:
        db.close()

    return {"status": "success", "message": "Order created successfully", "data": data}


@router.get("")
def list_orders_api(user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = [serialize_order(order) for order in list_orders(db, user)]
    finally:
        db.close()

    return {"status": "success", "count": len(data), "data": data}


@router.get("/stats")
def order_stats_api(user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = order_stats(db, user)
    finally:
        db.close()

    return {"status": "success", "data": data}


@router.get("/{order_id}")
def get_order_api(order_id: str, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = serialize_order(get_order(db, user, order_id))
    finally:
        db.close()

    return {"status": "success", "data": data}


@router.put("/{order_id}/status")
def update_status_api(order_id: str, request: StatusUpdateRequest, admin: CurrentUser = Depends(require_admin)):
    db = database.SessionLocal()
    try:
        order = update_order_status(db, order_id, request.status, request.tracking_number, request.courier)
        data = serialize_order(order)
    finally:
        db.close()

    return {"status": "success", "message": "Order status updated", "data": data}


@router.put("/{order_id}/cancel")
def cancel_order_api(order_id: str, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = serialize_order(cancel_order(db, user, order_id))
    finally:
        db.close()

    return {"status": "success", "message": "Order cancelled", "data": data}
