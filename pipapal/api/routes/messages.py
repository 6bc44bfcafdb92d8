import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from pipapal.api.deps import dispatch, get_current_user
from pipapal.api.schemas import FeedbackCreate, FeedbackOut, MessageCreate, MessageOut
from pipapal.db.models import Feedback, User
from pipapal.db.session import get_db
from pipapal.services import messaging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Messages"])


@router.post("/messages", response_model=MessageOut, status_code=201, summary="Send a message")
def send_message(
    body: MessageCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    outbox = []
    message = messaging.send_message(db, user, body.recipient_id, body.content, body.collection_id, outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return message


@router.get("/messages", response_model=List[MessageOut], summary="My conversations")
def list_messages(
    with_user: Optional[int] = None, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return messaging.list_messages(db, user, with_user)


@router.post("/messages/{message_id}/read", response_model=MessageOut, summary="Mark a message read")
def read_message(message_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    message = messaging.mark_read(db, user, message_id)
    db.commit()
    return message


@router.post("/feedback", response_model=FeedbackOut, status_code=201, summary="Send product feedback")
def create_feedback(body: FeedbackCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    feedback = Feedback(
        user_id=user.id, category=body.category, subject=body.subject, message=body.message, status="open"
    )
    db.add(feedback)
    db.commit()
    logger.info("Feedback %s (%s) from user %s", feedback.id, feedback.category, user.id)
    return feedback


@router.get("/feedback", response_model=List[FeedbackOut], summary="My feedback")
def list_feedback(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    stmt = select(Feedback).where(Feedback.user_id == user.id).order_by(Feedback.created_at.desc(), Feedback.id.desc())
    return list(db.scalars(stmt))
