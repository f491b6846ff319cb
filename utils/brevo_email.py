from __future__ import annotations

import logging
import os
from typing import Callable, Optional

import requests

from utils.errors import DeliveryError

logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"
SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", "Auth System")

# send(to_email=..., subject=..., html=..., text=...)
Mailer = Callable[..., None]


def send_email(*, to_email: str, subject: str, html: str, text: Optional[str] = None) -> None:
    """
    Sends email using Brevo Transactional Email API.

    Requires:
      - BREVO_API_KEY
      - BREVO_FROM (email) OR EMAIL_FROM

    One attempt only; any failure surfaces as DeliveryError.
    """
    api_key = os.getenv("BREVO_API_KEY")
    if not api_key:
        raise DeliveryError("BREVO_API_KEY is not set")

    from_email = os.getenv("BREVO_FROM") or os.getenv("EMAIL_FROM")
    if not from_email:
        raise DeliveryError("BREVO_FROM (or EMAIL_FROM) is not set")

    payload = {
        "sender": {"email": from_email, "name": SENDER_NAME},
        "to": [{"email": to_email}],
        "subject": subject,
        "htmlContent": html,
    }
    if text:
        payload["textContent"] = text

    try:
        resp = requests.post(
            BREVO_URL,
            headers={
                "accept": "application/json",
                "api-key": api_key,
                "content-type": "application/json",
            },
            json=payload,
            timeout=15,
        )
    except requests.RequestException as e:
        raise DeliveryError(f"Brevo request failed: {e}") from e

    if resp.status_code >= 300:
        raise DeliveryError(f"Brevo send failed ({resp.status_code}): {resp.text}", status_code=resp.status_code)


def log_email(*, to_email: str, subject: str, html: str, text: Optional[str] = None) -> None:
    """Development backend: nothing leaves the process."""
    logger.info("Mock email to %s | %s | %s", to_email, subject, text or html)


def get_mailer() -> Mailer:
    if os.getenv("BREVO_API_KEY"):
        return send_email
    return log_email
