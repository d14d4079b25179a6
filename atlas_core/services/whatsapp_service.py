# atlas_core/services/whatsapp_service.py

import re
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.core.logging_config import trace_id_var

_NON_DIGITS = re.compile(r"\D+")


class WhatsAppSendResult(BaseModel):
    ok: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    status: Optional[int] = None


def normalize_bolivia_phone(raw: Optional[str]) -> Optional[str]:
    """Normalizes a phone number to Bolivian international digits (591XXXXXXXX)."""
    if not raw:
        return None
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        return None
    if digits.startswith("591"):
        return digits
    if digits.startswith("00"):
        trimmed = digits[2:]
        return trimmed if trimmed.startswith("591") else f"591{trimmed}"
    if len(digits) == 8:
        return f"591{digits}"
    if len(digits) == 9 and digits.startswith("0"):
        return f"591{digits[1:]}"
    # Any other country code is passed through as-is
    return digits if len(digits) >= 11 else None


def is_whatsapp_configured() -> bool:
    return settings.whatsapp_configured


async def send_whatsapp_text(to: str, message: str, preview_url: bool = True) -> WhatsAppSendResult:
    """
    Sends a text message through the WhatsApp Cloud API.

    Never raises: configuration problems, invalid numbers, provider errors and
    network failures are all reported through the returned result.
    """
    log = logger.bind(trace_id=trace_id_var.get(), service="WhatsAppService")

    if not settings.whatsapp_configured:
        log.critical("WhatsApp API credentials (Token, Phone ID) missing. Cannot send message.")
        return WhatsAppSendResult(ok=False, error="config_missing")

    recipient = normalize_bolivia_phone(to)
    if not recipient:
        log.warning(f"Rejected WhatsApp recipient '{to}': invalid phone number.")
        return WhatsAppSendResult(ok=False, error="invalid_phone")

    api_url = f"{settings.WHATSAPP_API_URL.rstrip('/')}/{settings.WHATSAPP_PHONE_NUMBER_ID}/messages"
    headers = {
        "Authorization": f"Bearer {settings.WHATSAPP_API_TOKEN}",
        "Content-Type": "application/json",
    }
    payload = {
        "messaging_product": "whatsapp",
        "to": recipient,
        "type": "text",
        "text": {"body": message, "preview_url": preview_url},
    }

    log.info(f"Sending WhatsApp text message to {recipient[:5]}***...")
    try:
        async with httpx.AsyncClient(timeout=25.0) as client:
            response = await client.post(api_url, headers=headers, json=payload)
    except httpx.TimeoutException:
        log.error("Timeout error sending WhatsApp message.")
        return WhatsAppSendResult(ok=False, error="timeout")
    except httpx.RequestError as e:
        log.error(f"HTTP request error sending WhatsApp message: {e}")
        return WhatsAppSendResult(ok=False, error=str(e) or "request_error")

    response_data: Dict[str, Any] = {}
    try:
        parsed = response.json()
        if isinstance(parsed, dict):
            response_data = parsed
    except ValueError:
        log.warning(f"WhatsApp API returned non-JSON response (Status: {response.status_code}): {response.text[:200]}")

    if not response.is_success:
        error_info = response_data.get("error")
        if isinstance(error_info, dict):
            error_message = error_info.get("message") or error_info.get("error_user_msg")
        else:
            error_message = error_info if isinstance(error_info, str) else None
        error_message = str(error_message) if error_message else f"WhatsApp error {response.status_code}"
        log.error(f"Failed to send WhatsApp message. Status={response.status_code}, Message='{error_message}'")
        return WhatsAppSendResult(ok=False, error=error_message, status=response.status_code)

    messages = response_data.get("messages")
    first = messages[0] if isinstance(messages, list) and messages else None
    message_id = first.get("id") if isinstance(first, dict) else None
    if message_id:
        log.success(f"WhatsApp message accepted. WAMI: {message_id}")
    else:
        log.warning("WhatsApp API returned 2xx but no message id.")
    return WhatsAppSendResult(ok=True, message_id=message_id, status=response.status_code)
