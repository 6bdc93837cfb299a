import logging
import os

import resend

import shopsphere.config  # noqa: F401  loads .env

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "alerts@shopsphere.local"


def send_manager_alert(recipient: str, subject: str, message: str) -> bool:
    """Fire-and-forget alert to a store manager.

    Returns ``False`` instead of raising when the sink is unconfigured or the
    delivery fails; callers are never interrupted by alerting.
    """
    api_key = (os.getenv("RESEND_API_KEY") or "").strip()
    if not api_key:
        logger.warning("Alert to %s skipped: RESEND_API_KEY is not configured", recipient)
        return False

    sender = os.getenv("ALERT_SENDER_EMAIL", DEFAULT_SENDER)
    dashboard = os.getenv("STORE_DASHBOARD_URL")
    text = message if not dashboard else f"{message}\n\nView dashboard: {dashboard}"

    resend.api_key = api_key
    try:
        response = resend.Emails.send({
            "from": f"Shops Sphere <{sender}>",
            "to": [recipient],
            "subject": subject,
            "text": text,
        })
    except Exception as exc:
        logger.error("Failed to send alert to %s: %s", recipient, exc)
        return False

    if not isinstance(response, dict) or not response.get("id"):
        logger.error("Failed to send alert to %s: %s", recipient, response)
        return False

    logger.info("Alert sent to %s: %s", recipient, subject)
    return True


def notify_out_of_stock(product_name: str, store_name: str, owner_email: str, remaining: int) -> bool:
    return send_manager_alert(
        recipient=owner_email,
        subject="Product Out of Stock",
        message=f"{product_name} is out of stock in {store_name} (remaining stock: {remaining}).",
    )
