"""Outbound WhatsApp channel adapters used by alert delivery."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx

from core.env import env_float, env_int, env_str
from core.logging import get_logger, mask_phone

logger = get_logger(__name__)

ALERT_CHANNEL = (env_str("ALERT_CHANNEL", "zapi") or "zapi").strip().lower()
ALERT_SEND_TIMEOUT = env_float("ALERT_SEND_TIMEOUT", 10.0, minimum=0.5)
ALERT_SEND_RETRIES = env_int("ALERT_SEND_RETRIES", 1, minimum=1)
ALERT_PHONE_COUNTRY_CODE = env_str("ALERT_PHONE_COUNTRY_CODE", "55") or "55"

WHATSAPP_API_URL = env_str("WHATSAPP_API_URL")
ZAPI_INSTANCE_ID = env_str("ZAPI_INSTANCE_ID")
ZAPI_INSTANCE_TOKEN = env_str("ZAPI_INSTANCE_TOKEN")
ZAPI_CLIENT_TOKEN = env_str("ZAPI_CLIENT_TOKEN")
ZAPI_BASE_URL = "https://api.z-api.io"

TWILIO_ACCOUNT_SID = env_str("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = env_str("TWILIO_AUTH_TOKEN")
TWILIO_WHATSAPP_FROM = env_str("TWILIO_WHATSAPP_FROM")
TWILIO_BASE_URL = "https://api.twilio.com"

SUCCESS_STATUS_CODES = frozenset({200, 201})
MIN_PHONE_DIGITS = 10
# Area code + 9-digit mobile; anything longer already has a country code.
MAX_NATIONAL_DIGITS = 11
_NON_DIGIT = re.compile(r"\D")


@dataclass
class DeliveryResult:
    ok: bool
    status_code: Optional[int] = None
    raw: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def normalize_phone(value: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """Digits only, prefixed with the country code; ``None`` when unusable.

    A leading ``+`` marks the number as international and it is kept as is.
    """
    prefix = _NON_DIGIT.sub("", country_code or ALERT_PHONE_COUNTRY_CODE)
    raw = str(value or "").strip()
    digits = _NON_DIGIT.sub("", raw)
    if not digits:
        return None
    if prefix and not raw.startswith("+") and len(digits) <= MAX_NATIONAL_DIGITS:
        digits = f"{prefix}{digits}"
    if len(digits) < MIN_PHONE_DIGITS:
        return None
    return digits


def _build_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _post_with_backoff(
    url: str,
    *,
    json: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    auth: Optional[httpx.Auth | tuple] = None,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    result_metadata: Optional[Dict[str, Any]] = None,
) -> DeliveryResult:
    """POST once per attempt; only transport errors and 5xx/429 are retried."""
    delay = 0.5
    attempts = max(1, max_attempts or ALERT_SEND_RETRIES)
    metadata = dict(result_metadata or {})
    error_message = "unknown error"
    status_code: Optional[int] = None
    raw: Any = None
    for attempt in range(1, attempts + 1):
        try:
            with _build_client(timeout or ALERT_SEND_TIMEOUT) as client:
                response = client.post(url, json=json, data=data, headers=headers, auth=auth)
            status_code = response.status_code
            raw = _response_body(response)
            if status_code in SUCCESS_STATUS_CODES:
                return DeliveryResult(ok=True, status_code=status_code, raw=raw, metadata=metadata)
            error_message = f"HTTP {status_code}"
            logger.warning("Notification HTTP error (attempt %s/%s): %s %s", attempt, attempts, status_code, raw)
            retryable = status_code == 429 or status_code >= 500
        except httpx.RequestError as exc:
            logger.warning("Notification request error (attempt %s/%s): %s", attempt, attempts, exc)
            error_message = str(exc) or exc.__class__.__name__
            retryable = True
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("Notification request rejected: %s", exc)
            error_message = str(exc) or exc.__class__.__name__
            retryable = False
        if not retryable or attempt >= attempts:
            break
        time.sleep(delay)
        delay *= 2
    return DeliveryResult(ok=False, status_code=status_code, raw=raw, error=error_message, metadata=metadata)


def _zapi_url() -> Optional[str]:
    if WHATSAPP_API_URL:
        return WHATSAPP_API_URL
    if ZAPI_INSTANCE_ID and ZAPI_INSTANCE_TOKEN:
        return f"{ZAPI_BASE_URL}/instances/{ZAPI_INSTANCE_ID}/token/{ZAPI_INSTANCE_TOKEN}/send-text"
    return None


def _send_zapi(phone: str, message: str) -> DeliveryResult:
    url = _zapi_url()
    if not url:
        logger.error("Z-API is not configured (WHATSAPP_API_URL or ZAPI_INSTANCE_ID/ZAPI_INSTANCE_TOKEN).")
        return DeliveryResult(ok=False, error="zapi not configured")
    headers = {"Content-Type": "application/json"}
    if ZAPI_CLIENT_TOKEN:
        headers["Client-Token"] = ZAPI_CLIENT_TOKEN
    return _post_with_backoff(
        url,
        json={"phone": phone, "message": message},
        headers=headers,
        result_metadata={"provider": "z-api"},
    )


def _send_twilio(phone: str, message: str) -> DeliveryResult:
    if not (TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_FROM):
        logger.error("Twilio is not configured (TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN/TWILIO_WHATSAPP_FROM).")
        return DeliveryResult(ok=False, error="twilio not configured")
    sender = TWILIO_WHATSAPP_FROM
    if not sender.startswith("whatsapp:"):
        sender = f"whatsapp:{sender}"
    return _post_with_backoff(
        f"{TWILIO_BASE_URL}/2010-04-01/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json",
        data={"From": sender, "To": f"whatsapp:+{phone}", "Body": message},
        auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
        result_metadata={"provider": "twilio"},
    )


def _send_console(phone: str, message: str) -> DeliveryResult:
    logger.info("[console] to=%s\n%s", mask_phone(phone), message)
    return DeliveryResult(ok=True, status_code=200, raw={"channel": "console"}, metadata={"provider": "console"})


CHANNEL_REGISTRY: Dict[str, Callable[[str, str], DeliveryResult]] = {
    "zapi": _send_zapi,
    "twilio": _send_twilio,
    "console": _send_console,
}


def send_whatsapp(
    address: Optional[str],
    message: str,
    *,
    channel: Optional[str] = None,
    country_code: Optional[str] = None,
) -> DeliveryResult:
    """Normalise ``address`` and deliver ``message``; never raises."""
    channel_name = (channel or ALERT_CHANNEL).lower()
    handler = CHANNEL_REGISTRY.get(channel_name)
    if handler is None:
        logger.warning("Unsupported alert channel requested: %s", channel_name)
        return DeliveryResult(ok=False, error=f"unsupported channel {channel_name}")
    phone = normalize_phone(address, country_code)
    if not phone:
        return DeliveryResult(ok=False, error="invalid phone number")
    result = handler(phone, message)
    if result.ok:
        logger.info("WhatsApp message sent via %s to %s (status=%s)", channel_name, mask_phone(phone), result.status_code)
    else:
        logger.warning(
            "WhatsApp message failed via %s to %s (status=%s error=%s)",
            channel_name,
            mask_phone(phone),
            result.status_code,
            result.error,
        )
    return result


__all__ = ["CHANNEL_REGISTRY", "DeliveryResult", "normalize_phone", "send_whatsapp"]
