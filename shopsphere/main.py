import logging
import os

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from shopsphere import database
from shopsphere.cart_routes import router as cart_router
from shopsphere.catalog_routes import router as catalog_router
from shopsphere.config import is_development
from shopsphere.database import init_db
from shopsphere.errors import ServiceError, UpstreamError, ValidationError
from shopsphere.order_routes import router as order_router
from shopsphere.routes import router
from shopsphere.webhooks import handle_event, parse_event, verify_signature

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ShopSphere Commerce API")

app.include_router(router)
app.include_router(order_router)
app.include_router(cart_router)
app.include_router(catalog_router)

init_db()


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    body = {"status": "error", "message": exc.message}
    if isinstance(exc, UpstreamError) and not is_development():
        body["message"] = "Payment provider error"
    else:
        body.update(exc.details)
    if is_development():
        body["detail"] = exc.message
    return JSONResponse(status_code=exc.status_code, content=body)


def _process_webhook(event: dict) -> str:
    db = database.SessionLocal()
    try:
        return handle_event(db, event)
    except Exception:
        # the processor cannot fix our failures by redelivering
        logger.exception("Webhook processing failed")
        return "error"
    finally:
        db.close()


@app.post("/payments/webhook")
async def paystack_webhook(request: Request, x_paystack_signature: str = Header(None)):
    payload = await request.body()

    # raises SignatureError before anything touches the database
    verify_signature(payload, x_paystack_signature)
    try:
        event = parse_event(payload)
    except ValidationError:
        logger.warning("Ignoring signed webhook with unreadable payload (%s bytes)", len(payload))
        return {"ok": True, "outcome": "ignored"}

    # database writes and alert delivery block, keep them off the event loop
    outcome = await run_in_threadpool(_process_webhook, event)
    return {"ok": True, "outcome": outcome}
