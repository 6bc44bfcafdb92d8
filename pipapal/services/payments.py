"""Pickup payments over M-Pesa STK push."""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from pipapal.db.models import Payment, PaymentStatus, User
from pipapal.errors import ConflictError, ExternalServiceError, NotFoundError, PermissionDeniedError
from pipapal.realtime import hub as relay
from pipapal.services.collections import Notice, get_collection, is_owner
from pipapal.services.mpesa import CallbackResult, MpesaClient, status_for_result_code
from pipapal.services.verification import format_phone_number

logger = logging.getLogger(__name__)


def _payment_event(payment: Payment) -> dict:
    return relay.event(
        relay.PAYMENT_UPDATE,
        f"Payment of KES {payment.amount} {payment.status}",
        paymentId=payment.id,
        collectionId=payment.collection_id,
        status=payment.status,
    )


def get_payment(db: Session, user: User, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    if payment.user_id != user.id:
        raise PermissionDeniedError("You don't have access to this payment")
    return payment


def list_payments(db: Session, user: User) -> List[Payment]:
    return list(db.scalars(select(Payment).where(Payment.user_id == user.id).order_by(Payment.created_at.desc(), Payment.id.desc())))


# PUBLIC_INTERFACE
def initiate_payment(
    db: Session, client: MpesaClient, user: User, amount: int, phone: str, collection_id: Optional[int] = None
) -> Payment:
    """Create a pending payment and send the STK prompt to `phone`."""
    if collection_id is not None:
        collection = get_collection(db, collection_id)
        if not is_owner(user, collection):
            raise PermissionDeniedError("You can only pay for your own collections")

    payment = Payment(
        user_id=user.id,
        collection_id=collection_id,
        amount=amount,
        phone=format_phone_number(phone),
        status=PaymentStatus.PENDING.value,
    )
    db.add(payment)
    db.flush()

    reference = f"PIPA{payment.id}"
    response = client.stk_push(payment.phone, amount, reference, "Waste pickup")
    payment.merchant_request_id = response.get("MerchantRequestID")
    payment.checkout_request_id = response.get("CheckoutRequestID")
    payment.result_desc = response.get("CustomerMessage") or response.get("ResponseDescription")
    db.flush()
    logger.info("STK push sent for payment %s (%s)", payment.id, payment.checkout_request_id)
    return payment


def _finish(payment: Payment, status: str, result_desc: Optional[str], receipt: Optional[str] = None) -> None:
    payment.status = status
    payment.result_desc = result_desc
    if receipt:
        payment.mpesa_receipt = receipt
    logger.info("Payment %s is %s: %s", payment.id, status, result_desc)


# PUBLIC_INTERFACE
def apply_callback(db: Session, result: CallbackResult, outbox: Optional[List[Notice]] = None) -> Optional[Payment]:
    """
    Record a Daraja callback. Unknown checkout ids are ignored; callbacks for
    payments that already reached a final status leave them unchanged.
    """
    payment = db.scalar(select(Payment).where(Payment.checkout_request_id == result.checkout_request_id))
    if payment is None:
        logger.warning("Callback for unknown checkout request %s", result.checkout_request_id)
        return None
    if payment.status != PaymentStatus.PENDING.value:
        return payment

    _finish(payment, result.status, result.result_desc, result.receipt)
    db.flush()
    if outbox is not None:
        outbox.append(Notice([payment.user_id], _payment_event(payment)))
    return payment


# PUBLIC_INTERFACE
def refresh_status(db: Session, client: MpesaClient, payment: Payment) -> Payment:
    """Poll Daraja for a pending payment's outcome."""
    if payment.status != PaymentStatus.PENDING.value or not payment.checkout_request_id:
        return payment
    try:
        data = client.stk_query(payment.checkout_request_id)
    except ExternalServiceError as exc:
        # Daraja answers with an error while the customer is still deciding.
        logger.info("Payment %s still pending: %s", payment.id, exc.detail)
        return payment

    code = data.get("ResultCode")
    if code is None:
        return payment
    _finish(payment, status_for_result_code(int(code)), data.get("ResultDesc"))
    db.flush()
    return payment


# PUBLIC_INTERFACE
def cancel_payment(db: Session, payment: Payment) -> Payment:
    if payment.status != PaymentStatus.PENDING.value:
        raise ConflictError(f"Payment is already {payment.status}")
    _finish(payment, PaymentStatus.CANCELLED.value, "Cancelled by user")
    db.flush()
    return payment
