import logging
import os
import time
from urllib.parse import quote

import requests

from shopsphere.config import paystack_base_url
from shopsphere.errors import (
    ConfigurationError,
    GatewayTimeoutError,
    NotFoundError,
    ProtocolError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

VERIFY_MAX_ATTEMPTS = 5
VERIFY_BASE_DELAY = 2.0      # seconds, multiplied by the attempt number
VERIFY_TIMEOUT = 10
REQUEST_TIMEOUT = 30

REFERENCE_PREFIX = "ref_"


def normalize_reference(reference: str) -> str:
    """Local form of a processor reference, always carrying the ``ref_`` prefix."""
    if not reference:
        return reference
    return reference if reference.startswith(REFERENCE_PREFIX) else f"{REFERENCE_PREFIX}{reference}"


def gateway_reference(reference: str) -> str:
    return reference[len(REFERENCE_PREFIX):] if reference.startswith(REFERENCE_PREFIX) else reference


def to_minor_units(amount) -> int:
    return int(round(float(amount) * 100))


def _headers():
    secret = os.getenv("PAYSTACK_SECRET_KEY")
    if not secret:
        raise ConfigurationError("PAYSTACK_SECRET_KEY is required")
    return {
        "Authorization": f"Bearer {secret}",
        "Content-Type": "application/json",
    }


def _json(response):
    try:
        body = response.json()
    except ValueError:
        raise ProtocolError("Invalid Paystack response format")
    if not isinstance(body, dict) or "status" not in body:
        raise ProtocolError("Invalid Paystack response format")
    return body


def _error_message(response) -> str:
    try:
        return response.json().get("message") or response.reason
    except (ValueError, AttributeError):
        return response.reason or f"HTTP {response.status_code}"


def initialize_transaction(email: str, amount, metadata: dict, callback_url: str) -> dict:
    """Open a transaction with the processor.

    Returns the processor's ``data`` block, which carries ``authorization_url``,
    ``access_code`` and ``reference``.
    """
    headers = _headers()
    if not email or amount is None or float(amount) <= 0:
        raise ValidationError(f"Invalid parameters: email={email}, amount={amount}")
    if not callback_url:
        raise ValidationError("Callback URL is required")

    try:
        response = requests.post(
            f"{paystack_base_url()}/transaction/initialize",
            json={
                "email": email,
                "amount": to_minor_units(amount),
                "metadata": metadata,
                "callback_url": callback_url,
            },
            headers=headers,
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as exc:
        logger.error("Paystack initialization error: %s", exc)
        raise UpstreamError(f"Failed to initialize payment: {exc}")

    if not response.ok:
        message = _error_message(response)
        logger.error("Paystack initialization error: %s", message)
        raise UpstreamError(f"Failed to initialize payment: {message}")

    body = _json(response)
    data = body.get("data") or {}
    if not body["status"] or not data.get("reference"):
        raise UpstreamError(f"Failed to initialize payment: {body.get('message', 'no reference returned')}")
    return data


def verify_transaction(reference: str) -> dict:
    """Ask the processor for the outcome of ``reference``.

    A ``pending`` answer or a transient failure waits ``VERIFY_BASE_DELAY *
    attempt`` seconds and asks again, up to ``VERIFY_MAX_ATTEMPTS`` times. A 404
    or an unreadable answer stops immediately. Returns the processor's ``data``
    block with a terminal ``status`` (success, failed, abandoned, ...).
    """
    headers = _headers()
    url = f"{paystack_base_url()}/transaction/verify/{quote(gateway_reference(reference), safe='')}"
    last_error = None

    for attempt in range(1, VERIFY_MAX_ATTEMPTS + 1):
        logger.info("Verification attempt %s for reference %s", attempt, reference)
        try:
            response = requests.get(url, headers=headers, timeout=VERIFY_TIMEOUT)
        except requests.RequestException as exc:
            last_error = UpstreamError(f"Payment verification failed: {exc}")
        else:
            if response.status_code == 404:
                raise NotFoundError(f"Transaction {reference} not found at processor")
            if response.status_code == 429 or response.status_code >= 500:
                last_error = UpstreamError(f"Payment verification failed: {_error_message(response)}")
            elif not response.ok:
                raise UpstreamError(f"Payment verification failed: {_error_message(response)}")
            else:
                data = _json(response).get("data")
                if not isinstance(data, dict) or "status" not in data:
                    raise ProtocolError("Invalid Paystack response format")
                if data["status"] != "pending":
                    return data
                last_error = GatewayTimeoutError("Transaction still pending after maximum retries")

        delay = VERIFY_BASE_DELAY * attempt
        logger.warning(
            "Verification attempt %s for %s inconclusive (%s), waiting %.1fs",
            attempt, reference, last_error.message, delay,
        )
        time.sleep(delay)

    raise last_error


def charge_authorization(email: str, amount, authorization_code: str, reference: str, metadata: dict) -> dict:
    """Charge a card the processor saved on an earlier successful payment."""
    headers = _headers()
    if not authorization_code:
        raise ValidationError("Authorization code is required")
    if amount is None or float(amount) <= 0:
        raise ValidationError("Valid amount required")

    try:
        response = requests.post(
            f"{paystack_base_url()}/transaction/charge_authorization",
            json={
                "authorization_code": authorization_code,
                "email": email,
                "amount": to_minor_units(amount),
                "reference": reference,
                "metadata": metadata,
            },
            headers=headers,
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as exc:
        logger.error("Paystack charge error: %s", exc)
        raise UpstreamError(f"Charge failed: {exc}")

    if response.status_code >= 500:
        raise UpstreamError(f"Charge failed: {_error_message(response)}")
    # 4xx bodies still describe the declined charge; callers record them
    return _json(response)
