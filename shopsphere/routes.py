from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from shopsphere import database
from shopsphere.auth import CurrentUser, get_current_user
from shopsphere.models import PaymentStatus
from shopsphere.payment_service import (
    charge_saved_card,
    initiate_payment,
    payment_history,
    serialize_verification,
    verify_payment,
)
from shopsphere.schemas import ChargeRequest, PaymentRequest

router = APIRouter()


@router.post("/orders/{order_id}/payments")
def create_payment_api(
    order_id: str,
    request: Optional[PaymentRequest] = None,
    user: CurrentUser = Depends(get_current_user)
):
    db = database.SessionLocal()
    try:
        data = initiate_payment(db, user, order_id, request.save_card if request else False)
    finally:
        db.close()

    return {"status": "success", "message": "Payment initialized", "data": data}


@router.get("/payments/verify")
def verify_payment_api(reference: str = "", user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        result = verify_payment(db, user, reference)
        data = serialize_verification(result)
        succeeded = result.payment.status == PaymentStatus.SUCCESS
        details = result.payment.details or {}
    finally:
        db.close()

    if succeeded:
        message = "Payment verified successfully" if result.applied else "Payment already verified"
        return {"status": "success", "message": message, "data": data}

    return JSONResponse(status_code=400, content={
        "status": "error",
        "message": details.get("failure_reason") or "Payment verification failed",
        "paystack_status": details.get("paystack_status"),
        "data": data,
    })


@router.post("/payments/{payment_id}/charge")
def charge_api(payment_id: str, request: ChargeRequest, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        payment = charge_saved_card(db, user, payment_id, request.amount)
        data = {
            "payment_id": payment.id,
            "amount": payment.amount,
            "reference": payment.transaction_reference,
            "payment_status": payment.status.value,
        }
        failure = (payment.details or {}).get("failure_reason")
    finally:
        db.close()

    if failure:
        return JSONResponse(status_code=400, content={"status": "error", "message": failure, "data": data})
    return {"status": "success", "message": "Payment charged", "data": data}


@router.get("/payments/history")
def history_api(user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        data = payment_history(db, user)
    finally:
        db.close()

    return {"status": "success", "data": data}
