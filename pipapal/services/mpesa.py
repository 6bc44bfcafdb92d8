"""
M-Pesa Daraja client: STK push initiation, STK status query and callback parsing.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import requests

from pipapal.config import settings
from pipapal.db.models import PaymentStatus
from pipapal.errors import ExternalServiceError
from pipapal.services.verification import format_phone_number

logger = logging.getLogger(__name__)

RESULT_SUCCESS = 0
RESULT_CANCELLED_BY_USER = 1032


# PUBLIC_INTERFACE
def status_for_result_code(result_code: int) -> str:
    """Map a Daraja ResultCode to a payment status."""
    if result_code == RESULT_SUCCESS:
        return PaymentStatus.SUCCESS.value
    if result_code == RESULT_CANCELLED_BY_USER:
        return PaymentStatus.CANCELLED.value
    return PaymentStatus.FAILED.value


def msisdn(phone_number: str) -> str:
    """Daraja wants 2547XXXXXXXX without the plus sign."""
    return format_phone_number(phone_number).lstrip("+")


@dataclass
class CallbackResult:
    merchant_request_id: Optional[str]
    checkout_request_id: str
    result_code: int
    result_desc: Optional[str]
    receipt: Optional[str] = None
    amount: Optional[float] = None

    @property
    def status(self) -> str:
        return status_for_result_code(self.result_code)


# PUBLIC_INTERFACE
def parse_callback(body: Dict[str, Any]) -> CallbackResult:
    """
    Parse the JSON Daraja posts to the callback URL:
    {"Body": {"stkCallback": {"CheckoutRequestID": ..., "ResultCode": 0, "CallbackMetadata": {"Item": [...]}}}}
    """
    try:
        callback = body["Body"]["stkCallback"]
        checkout_id = callback["CheckoutRequestID"]
        result_code = int(callback["ResultCode"])
    except (KeyError, TypeError, ValueError):
        raise ValueError("Malformed STK callback")

    items = {}
    for item in (callback.get("CallbackMetadata") or {}).get("Item", []):
        if isinstance(item, dict) and "Name" in item:
            items[item["Name"]] = item.get("Value")

    receipt = items.get("MpesaReceiptNumber")
    return CallbackResult(
        merchant_request_id=callback.get("MerchantRequestID"),
        checkout_request_id=checkout_id,
        result_code=result_code,
        result_desc=callback.get("ResultDesc"),
        receipt=str(receipt) if receipt is not None else None,
        amount=items.get("Amount"),
    )


class MpesaClient:
    """Thin client for the Daraja REST API."""

    def __init__(
        self,
        base_url: str,
        consumer_key: Optional[str],
        consumer_secret: Optional[str],
        shortcode: str,
        passkey: Optional[str],
        callback_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "MpesaClient":
        return cls(
            base_url=settings.mpesa_base_url,
            consumer_key=settings.mpesa_consumer_key,
            consumer_secret=settings.mpesa_consumer_secret,
            shortcode=settings.mpesa_shortcode,
            passkey=settings.mpesa_passkey,
            callback_url=settings.mpesa_callback_url,
        )

    def _require_credentials(self) -> None:
        if not (self.consumer_key and self.consumer_secret and self.passkey):
            raise ExternalServiceError("M-Pesa is not configured")

    def _access_token(self) -> str:
        resp = self.session.get(
            f"{self.base_url}/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            auth=(self.consumer_key, self.consumer_secret),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        token = resp.json().get("access_token")
        if not token:
            raise ExternalServiceError("M-Pesa did not return an access token")
        return token

    def _password(self, timestamp: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._require_credentials()
        try:
            token = self._access_token()
            resp = self.session.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("M-Pesa request to %s failed: %s", path, exc)
            raise ExternalServiceError("M-Pesa request failed")
        if resp.status_code >= 400:
            logger.error("M-Pesa %s returned %s: %s", path, resp.status_code, data)
            raise ExternalServiceError(data.get("errorMessage") or "M-Pesa rejected the request")
        return data

    # PUBLIC_INTERFACE
    def stk_push(self, phone_number: str, amount: int, reference: str, description: str) -> Dict[str, Any]:
        """Prompt `phone_number` to authorise `amount` KES; returns Daraja's response."""
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        phone = msisdn(phone_number)
        data = self._post(
            "/mpesa/stkpush/v1/processrequest",
            {
                "BusinessShortCode": self.shortcode,
                "Password": self._password(timestamp),
                "Timestamp": timestamp,
                "TransactionType": "CustomerPayBillOnline",
                "Amount": int(amount),
                "PartyA": phone,
                "PartyB": self.shortcode,
                "PhoneNumber": phone,
                "CallBackURL": self.callback_url,
                "AccountReference": reference[:12],
                "TransactionDesc": description[:13],
            },
        )
        if str(data.get("ResponseCode")) != "0":
            raise ExternalServiceError(data.get("ResponseDescription") or "STK push was not accepted")
        return data

    # PUBLIC_INTERFACE
    def stk_query(self, checkout_request_id: str) -> Dict[str, Any]:
        """Ask Daraja for the outcome of an STK push."""
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        return self._post(
            "/mpesa/stkpushquery/v1/query",
            {
                "BusinessShortCode": self.shortcode,
                "Password": self._password(timestamp),
                "Timestamp": timestamp,
                "CheckoutRequestID": checkout_request_id,
            },
        )
