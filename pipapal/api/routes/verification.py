from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pipapal.api.deps import get_current_user
from pipapal.api.schemas import EmailSendBody, EmailVerifyBody, PhoneSendBody, PhoneVerifyBody
from pipapal.db.models import User
from pipapal.db.session import get_db
from pipapal.services import verification

router = APIRouter(prefix="/api/verification", tags=["Verification"])


@router.post("/phone/send", summary="Text a one-time code to a phone number")
def send_phone_code(body: PhoneSendBody, user: User = Depends(get_current_user)):
    result = verification.send_otp(body.phone)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result["message"])
    return result


@router.post("/phone/verify", summary="Confirm a phone number with its one-time code")
def verify_phone_code(body: PhoneVerifyBody, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not verification.verify_otp(body.phone, body.code):
        raise HTTPException(status_code=400, detail="Invalid or expired verification code")
    user.phone = verification.format_phone_number(body.phone)
    user.phone_verified = True
    db.commit()
    return {"success": True, "message": "Phone number verified"}


@router.post("/email/send", summary="Issue an email verification code")
def send_email_code(body: EmailSendBody, user: User = Depends(get_current_user)):
    result = verification.send_verification_email(body.email or user.email)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return result


@router.post("/email/verify", summary="Confirm an email address with its code")
def verify_email_code(body: EmailVerifyBody, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    email = body.email or user.email
    if email != user.email:
        raise HTTPException(status_code=400, detail="Code was not issued for your account's email")
    if not verification.verify_email_code(email, body.code):
        raise HTTPException(status_code=400, detail="Invalid or expired verification code")
    user.email_verified = True
    db.commit()
    return {"success": True, "message": "Email verified"}
