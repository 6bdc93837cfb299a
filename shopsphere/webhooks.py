import hashlib
import hmac
import json
import logging
import os

from shopsphere.errors import ConfigurationError, NotFoundError, SignatureError, ValidationError
from shopsphere.reconciliation import SOURCE_WEBHOOK, reconcile

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"
CHARGE_SUCCESS = "charge.success"


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature: str):
    secret = os.getenv("PAYSTACK_WEBHOOK_SECRET")
    if not secret:
        raise ConfigurationError("Webhook secret missing")
    expected = compute_signature(raw_body, secret)
    if not signature or not hmac.compare_digest(expected, signature.strip().lower()):
        logger.warning("Invalid webhook signature")
        raise SignatureError("Invalid signature")


def parse_event(raw_body: bytes) -> dict:
    try:
        event = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Invalid payload")
    if not isinstance(event, dict):
        raise ValidationError("Invalid payload")
    return event


def handle_event(db, event: dict) -> str:
    """Route an authenticated event. Returns what happened, for logging and tests.

    Only ``charge.success`` changes state; it goes through the same
    reconciliation as a manual verify. Anything the processor cannot fix by
    redelivering (unknown reference, missing data) is logged and acknowledged.
    """
    event_type = event.get("event")
    if event_type != CHARGE_SUCCESS:
        logger.info("Ignoring webhook event %s", event_type)
        return "ignored"

    data = event.get("data") or {}
    reference = data.get("reference")
    if not reference:
        logger.warning("Webhook %s without reference", event_type)
        return "ignored"

    gateway_data = dict(data)
    gateway_data["status"] = "success"
    try:
        result = reconcile(db, reference, gateway_data, source=SOURCE_WEBHOOK)
    except NotFoundError:
        logger.warning("Webhook for unknown payment reference %s", reference)
        return "unknown"

    logger.info("Webhook processed: %s", reference)
    return "applied" if result.applied else "duplicate"
