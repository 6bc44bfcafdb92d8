import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from pipapal.api.deps import dispatch, get_current_user, get_mpesa_client
from pipapal.api.schemas import PaymentCreate, PaymentOut
from pipapal.db.models import User
from pipapal.db.session import get_db
from pipapal.services import payments
from pipapal.services.mpesa import MpesaClient, parse_callback

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])


@router.post("/stk-push", response_model=PaymentOut, status_code=201, summary="Start an M-Pesa payment")
def stk_push(
    body: PaymentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MpesaClient = Depends(get_mpesa_client),
):
    payment = payments.initiate_payment(db, client, user, body.amount, body.phone, body.collection_id)
    db.commit()
    return payment


@router.post("/callback", summary="M-Pesa STK callback")
def stk_callback(body: dict, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    """Daraja expects a 200 with ResultCode 0 even when the payload is not ours."""
    try:
        result = parse_callback(body)
    except ValueError:
        logger.warning("Ignoring malformed STK callback: %s", body)
        return {"ResultCode": 0, "ResultDesc": "Accepted"}

    outbox = []
    payments.apply_callback(db, result, outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return {"ResultCode": 0, "ResultDesc": "Accepted"}


@router.get("", response_model=List[PaymentOut], summary="My payments")
def list_payments(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return payments.list_payments(db, user)


@router.get("/{payment_id}", response_model=PaymentOut, summary="Payment status")
def get_payment(
    payment_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MpesaClient = Depends(get_mpesa_client),
):
    payment = payments.get_payment(db, user, payment_id)
    payments.refresh_status(db, client, payment)
    db.commit()
    return payment


@router.post("/{payment_id}/cancel", response_model=PaymentOut, summary="Cancel a pending payment")
def cancel_payment(payment_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    payment = payments.get_payment(db, user, payment_id)
    payments.cancel_payment(db, payment)
    db.commit()
    return payment
