import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from pipapal.api.deps import get_current_user
from pipapal.api.schemas import (
    AuthOut,
    FirebaseLoginBody,
    LoginBody,
    OnboardingBody,
    PasswordChange,
    RegisterBody,
    UserOut,
    UserUpdate,
)
from pipapal.db.models import User, UserRole
from pipapal.db.session import get_db
from pipapal.services import accounts, firebase
from pipapal.services.security import TokenError, create_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])


def _auth_response(user: User) -> AuthOut:
    return AuthOut(token=create_token(user.id, user.role), user=UserOut.model_validate(user))


@router.post("/register", response_model=AuthOut, status_code=201, summary="Create an account")
def register(body: RegisterBody, db: Session = Depends(get_db)):
    user = accounts.create_user(
        db,
        username=body.username,
        email=body.email,
        full_name=body.full_name,
        password=body.password,
        role=UserRole(body.role).value,
        address=body.address,
        phone=body.phone,
    )
    db.commit()
    return _auth_response(user)


@router.post("/login", response_model=AuthOut, summary="Log in with username and password")
def login(body: LoginBody, db: Session = Depends(get_db)):
    user = accounts.authenticate(db, body.username, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _auth_response(user)


@router.post("/auth/firebase", response_model=AuthOut, summary="Exchange a Firebase ID token for an API token")
def firebase_login(body: FirebaseLoginBody, db: Session = Depends(get_db)):
    try:
        claims = firebase.verify_id_token(body.id_token)
    except TokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc))

    uid = claims.get("uid") or claims.get("sub")
    email = claims.get("email")
    if not uid or not email:
        raise HTTPException(status_code=400, detail="Firebase account has no email address")

    user = db.scalar(select(User).where(User.firebase_uid == uid))
    if user is None:
        user = accounts.get_user_by_email(db, email)
        if user is not None:
            user.firebase_uid = uid
            logger.info("Linked Firebase account to user %s", user.id)
        else:
            username = body.username or email.split("@", 1)[0]
            if accounts.get_user_by_username(db, username):
                username = f"{username}-{uid[:6]}"
            user = accounts.create_user(
                db,
                username=username,
                email=email,
                full_name=claims.get("name") or username,
                role=UserRole(body.role).value,
                firebase_uid=uid,
                email_verified=bool(claims.get("email_verified")),
            )
    elif claims.get("email_verified") and not user.email_verified:
        user.email_verified = True
    db.commit()
    return _auth_response(user)


@router.post("/logout", summary="Log out")
def logout(user: User = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy.
    return {"ok": True}


@router.get("/user", response_model=UserOut, summary="Current user")
def current_user(user: User = Depends(get_current_user)):
    return user


@router.patch("/user", response_model=UserOut, summary="Update profile")
def update_user(body: UserUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    accounts.update_profile(db, user, body.model_dump(exclude_unset=True))
    db.commit()
    return user


@router.post("/user/password", summary="Change password")
def change_password(body: PasswordChange, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    accounts.change_password(db, user, body.current_password, body.new_password)
    db.commit()
    return {"message": "Password updated successfully"}


@router.post("/onboarding", response_model=UserOut, summary="Complete onboarding")
def onboarding(body: OnboardingBody, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    accounts.complete_onboarding(db, user, body.model_dump(exclude_unset=True))
    db.commit()
    return user
