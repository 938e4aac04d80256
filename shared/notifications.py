"""SMS notifications through Africa's Talking.

``notify_sms`` is the fire-and-forget entry point used by the domain
services. It hands the message to a Celery task and never raises; the task
performs the HTTP call.
"""

import logging
from typing import Optional

import httpx

from shared.celery_app import celery_app
from shared.config import settings

logger = logging.getLogger(__name__)

# Africa's Talking per-recipient status code for an accepted message
AT_STATUS_SUCCESS = 101


class SmsDeliveryError(Exception):
    """Africa's Talking rejected the message."""


def send_sms_now(phone: str, message: str) -> dict:
    """Send one SMS synchronously. Raises on transport or provider failure."""
    data = {
        "username": settings.sms_username,
        "to": phone,
        "message": message,
    }
    if settings.sms_sender_id:
        data["from"] = settings.sms_sender_id

    response = httpx.post(
        settings.sms_api_url,
        data=data,
        headers={
            "apiKey": settings.sms_api_key,
            "Accept": "application/json",
        },
        timeout=10.0,
    )
    response.raise_for_status()

    body = response.json()
    recipients = body.get("SMSMessageData", {}).get("Recipients", [])
    if not recipients:
        raise SmsDeliveryError(f"No recipients accepted: {body}")

    recipient = recipients[0]
    if recipient.get("statusCode") != AT_STATUS_SUCCESS:
        raise SmsDeliveryError(
            f"Failed to send SMS to {recipient.get('number')}: {recipient.get('status')}"
        )
    return recipient


@celery_app.task(
    name="notifications.send_sms",
    autoretry_for=(httpx.TransportError,),
    retry_kwargs={"max_retries": 3},
    retry_backoff=True,
)
def send_sms(phone: str, message: str, purpose: str = "generic") -> dict:
    """Celery task: deliver an SMS. Provider rejections are logged, not retried."""
    try:
        recipient = send_sms_now(phone, message)
    except (SmsDeliveryError, httpx.HTTPStatusError) as e:
        logger.warning(
            f"SMS delivery failed: {e}",
            extra={"purpose": purpose},
        )
        return {"status": "failed", "error": str(e)}

    logger.info(
        f"SMS sent ({purpose})",
        extra={"purpose": purpose, "message_id": recipient.get("messageId")},
    )
    return {"status": "sent", "message_id": recipient.get("messageId")}


def notify_sms(phone: Optional[str], message: str, purpose: str = "generic") -> bool:
    """Queue an SMS. Returns True when queued; failures are logged and swallowed."""
    if not settings.sms_enabled:
        logger.debug(f"SMS disabled, not sending {purpose} notification")
        return False
    if not phone:
        logger.info(f"No phone number for {purpose} notification")
        return False

    try:
        send_sms.delay(phone, message, purpose)
        return True
    except Exception as e:
        logger.warning(
            f"Failed to queue {purpose} SMS: {e}",
            extra={"purpose": purpose},
        )
        return False
