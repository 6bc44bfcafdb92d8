"""
Phone (SMS OTP via Twilio) and email verification codes.

Codes live in process memory only, keyed by the normalised phone number or
the email address. A correct code is consumed; an expired one is purged the
first time it is looked up.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from pipapal.config import settings

logger = logging.getLogger(__name__)

OTP_TTL = timedelta(minutes=10)
EMAIL_CODE_TTL = timedelta(minutes=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Entry:
    code: str
    expires: datetime


class CodeStore:
    """In-memory map of key -> (code, expiry)."""

    def __init__(self, ttl: timedelta, clock: Callable[[], datetime] = _utcnow) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def issue(self, key: str) -> str:
        code = generate_code()
        self._entries[key] = _Entry(code, self._clock() + self.ttl)
        return code

    def verify(self, key: str, code: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() > entry.expires:
            del self._entries[key]
            return False
        if not secrets.compare_digest(entry.code, code or ""):
            return False
        del self._entries[key]
        return True

    def discard(self, key: str) -> None:
        self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def clear(self) -> None:
        self._entries.clear()


otp_store = CodeStore(OTP_TTL)
email_code_store = CodeStore(EMAIL_CODE_TTL)


# PUBLIC_INTERFACE
def generate_code() -> str:
    """Six-digit numeric code."""
    return str(100000 + secrets.randbelow(900000))


# PUBLIC_INTERFACE
def format_phone_number(phone_number: str) -> str:
    """
    Normalise to E.164. Kenyan local numbers (0XXXXXXXXX) gain the 254 prefix.

    >>> format_phone_number("0712 345 678")
    '+254712345678'
    """
    cleaned = re.sub(r"\D", "", phone_number or "")
    if cleaned.startswith("0"):
        cleaned = "254" + cleaned[1:]
    return "+" + cleaned


# PUBLIC_INTERFACE
def mask_email(email: str) -> str:
    """e.g. example@domain.com -> e*****e@d****n.com"""
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    if len(local) > 2:
        local = local[0] + "*" * (len(local) - 2) + local[-1]
    parts = domain.split(".")
    if len(parts) > 1 and len(parts[0]) > 2:
        name = parts[0]
        domain = name[0] + "*" * (len(name) - 2) + name[-1] + "." + ".".join(parts[1:])
    return f"{local}@{domain}"


_twilio_client: Optional[Client] = None


def _get_twilio_client() -> Client:
    global _twilio_client
    if _twilio_client is None:
        if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number):
            raise TwilioException("Missing required Twilio environment variables")
        _twilio_client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
    return _twilio_client


def send_sms(to: str, body: str) -> None:
    _get_twilio_client().messages.create(body=body, from_=settings.twilio_phone_number, to=to)


# PUBLIC_INTERFACE
def send_otp(phone_number: str) -> dict:
    """Issue an OTP for `phone_number` and text it. Returns {success, message}."""
    formatted = format_phone_number(phone_number)
    otp = otp_store.issue(formatted)
    try:
        send_sms(formatted, f"Your PipaPal verification code is: {otp}. Valid for 10 minutes.")
    except TwilioException as exc:
        logger.error("Error sending OTP to %s: %s", formatted[:-4] + "****", exc)
        otp_store.discard(formatted)
        return {"success": False, "message": str(exc) or "Failed to send verification code"}
    return {"success": True, "message": "OTP sent successfully"}


# PUBLIC_INTERFACE
def verify_otp(phone_number: str, otp: str) -> bool:
    return otp_store.verify(format_phone_number(phone_number), otp)


# PUBLIC_INTERFACE
def send_verification_email(email: str) -> dict:
    """
    Issue an email verification code.

    No mail provider is wired in; in development the code is returned so the
    UI can display it.
    """
    if not email:
        return {"success": False, "message": "Email is required"}

    code = email_code_store.issue(email)
    logger.info("Sending verification code to %s", mask_email(email))

    response = {"success": True, "message": f"Verification code generated for {mask_email(email)}."}
    if settings.is_development:
        response["developmentMode"] = True
        response["code"] = code
    return response


# PUBLIC_INTERFACE
def verify_email_code(email: str, code: str) -> bool:
    return email_code_store.verify(email, code)
