"""Direct messages between users, pushed live through the relay."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from pipapal.db.models import Message, User
from pipapal.errors import ConflictError, NotFoundError, PermissionDeniedError
from pipapal.realtime import hub as relay
from pipapal.services.collections import Notice, get_collection


# PUBLIC_INTERFACE
def send_message(
    db: Session,
    sender: User,
    recipient_id: int,
    content: str,
    collection_id: Optional[int] = None,
    outbox: Optional[List[Notice]] = None,
) -> Message:
    if recipient_id == sender.id:
        raise ConflictError("You can't message yourself")
    if db.get(User, recipient_id) is None:
        raise NotFoundError("Recipient not found")
    if collection_id is not None:
        collection = get_collection(db, collection_id)
        parties = {collection.user_id, collection.collector_id}
        if sender.id not in parties or recipient_id not in parties:
            raise PermissionDeniedError("Only the household and the assigned collector can message about a collection")

    message = Message(sender_id=sender.id, recipient_id=recipient_id, content=content, collection_id=collection_id)
    db.add(message)
    db.flush()

    if outbox is not None:
        outbox.append(
            Notice(
                [recipient_id],
                relay.event(
                    relay.NEW_MESSAGE,
                    content,
                    messageId=message.id,
                    senderId=sender.id,
                    senderName=sender.full_name,
                    collectionId=collection_id,
                ),
            )
        )
    return message


def list_messages(db: Session, user: User, with_user: Optional[int] = None) -> List[Message]:
    if with_user is None:
        cond = or_(Message.sender_id == user.id, Message.recipient_id == user.id)
    else:
        cond = or_(
            and_(Message.sender_id == user.id, Message.recipient_id == with_user),
            and_(Message.sender_id == with_user, Message.recipient_id == user.id),
        )
    return list(db.scalars(select(Message).where(cond).order_by(Message.created_at.asc(), Message.id.asc())))


def mark_read(db: Session, user: User, message_id: int) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if message.recipient_id != user.id:
        raise PermissionDeniedError("Only the recipient can mark a message read")
    message.is_read = True
    db.flush()
    return message
