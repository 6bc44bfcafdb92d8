"""
Pickup scheduling and status tracking.

Status changes go through one transition table; completing a pickup with a
known waste amount credits the household with environmental impact and
sustainability score and may award badges. Relay notifications produced along
the way are appended to the caller's outbox and sent after the response.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pipapal.db.models import (
    BadgeType,
    Collection,
    CollectionStatus,
    Impact,
    Rating,
    User,
    UserRole,
)
from pipapal.errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError
from pipapal.realtime import hub as relay
from pipapal.services.accounts import award_badge, record_activity
from pipapal.services.permissions import Permissions, has_permission

logger = logging.getLogger(__name__)

S = CollectionStatus

TRANSITIONS = {
    S.PENDING: {S.SCHEDULED, S.CONFIRMED, S.CANCELLED},
    S.SCHEDULED: {S.CONFIRMED, S.IN_PROGRESS, S.CANCELLED},
    S.CONFIRMED: {S.IN_PROGRESS, S.CANCELLED},
    S.IN_PROGRESS: {S.COMPLETED, S.CANCELLED},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
}
TERMINAL = (S.COMPLETED.value, S.CANCELLED.value)

# Per kg of collected waste.
WATER_LITRES_PER_KG = 10
CO2_KG_PER_KG = 2.5
TREES_PER_KG = 0.1
ENERGY_KWH_PER_KG = 5
SCORE_PER_KG = 5

OWNER_FIELDS = ("waste_type", "waste_description", "scheduled_date", "address", "location", "notes")
COLLECTOR_FIELDS = ("waste_amount", "notes")
NULLABLE_FIELDS = ("waste_description", "location", "notes", "waste_amount")

RECYCLING_CHAMPION_PICKUPS = 5
ZERO_WASTE_HERO_KG = 100
WATER_SAVER_LITRES = 1000
ENERGY_PRO_KWH = 500
COMMUNITY_LEADER_JOBS = 10


class Notice(NamedTuple):
    user_ids: List[int]
    message: Dict[str, Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def can_transition(current: str, requested: str) -> bool:
    """True if `requested` is reachable from `current` in one step (or is unchanged)."""
    if current == requested:
        return True
    try:
        return S(requested) in TRANSITIONS[S(current)]
    except ValueError:
        return False


def get_collection(db: Session, collection_id: int) -> Collection:
    collection = db.get(Collection, collection_id)
    if collection is None:
        raise NotFoundError("Collection not found")
    return collection


def is_owner(user: User, collection: Collection) -> bool:
    return collection.user_id == user.id


def is_assigned_collector(user: User, collection: Collection) -> bool:
    return user.role == UserRole.COLLECTOR.value and collection.collector_id == user.id


# PUBLIC_INTERFACE
def get_visible_collection(db: Session, user: User, collection_id: int) -> Collection:
    """Owner, assigned collector, or any collector while the pickup is unclaimed."""
    collection = get_collection(db, collection_id)
    if is_owner(user, collection) or is_assigned_collector(user, collection):
        return collection
    if user.role == UserRole.COLLECTOR.value and collection.collector_id is None:
        return collection
    raise PermissionDeniedError("You don't have access to this collection")


def list_for_user(db: Session, user: User) -> List[Collection]:
    if user.role == UserRole.COLLECTOR.value:
        cond = Collection.collector_id == user.id
    else:
        cond = Collection.user_id == user.id
    return list(db.scalars(select(Collection).where(cond).order_by(Collection.scheduled_date.desc())))


def list_upcoming(db: Session, user: User, now: Optional[datetime] = None) -> List[Collection]:
    now = now or _utcnow()
    owner_col = Collection.collector_id if user.role == UserRole.COLLECTOR.value else Collection.user_id
    stmt = (
        select(Collection)
        .where(
            owner_col == user.id,
            Collection.scheduled_date >= now,
            Collection.status != S.CANCELLED.value,
        )
        .order_by(Collection.scheduled_date.asc())
    )
    return list(db.scalars(stmt))


def list_available(db: Session) -> List[Collection]:
    """Unclaimed pickups a collector can accept."""
    stmt = (
        select(Collection)
        .where(
            Collection.collector_id.is_(None),
            Collection.status.in_((S.PENDING.value, S.SCHEDULED.value)),
        )
        .order_by(Collection.scheduled_date.asc())
    )
    return list(db.scalars(stmt))


def list_route_candidates(db: Session, collector: User) -> List[Collection]:
    stmt = (
        select(Collection)
        .where(Collection.collector_id == collector.id)
        .order_by(Collection.scheduled_date.asc(), Collection.id.asc())
    )
    return list(db.scalars(stmt))


def list_completed(db: Session) -> List[Collection]:
    stmt = (
        select(Collection)
        .where(Collection.status == S.COMPLETED.value)
        .order_by(Collection.completed_date.desc(), Collection.id.desc())
    )
    return list(db.scalars(stmt))


def _collector_ids(db: Session) -> List[int]:
    return list(db.scalars(select(User.id).where(User.role == UserRole.COLLECTOR.value)))


# PUBLIC_INTERFACE
def create_collection(db: Session, user: User, data: Dict[str, Any], outbox: Optional[List[Notice]] = None) -> Collection:
    collection = Collection(user_id=user.id, **data)
    if not collection.status:
        collection.status = S.SCHEDULED.value
    db.add(collection)
    db.flush()

    record_activity(db, user.id, "collection_scheduled", f"Scheduled a {collection.waste_type} waste collection")
    logger.info("User %s scheduled collection %s", user.id, collection.id)

    if outbox is not None:
        outbox.append(
            Notice(
                _collector_ids(db),
                relay.collection_event(
                    relay.NEW_COLLECTION,
                    collection,
                    f"New {collection.waste_type} pickup requested at {collection.address}",
                ),
            )
        )
    return collection


# PUBLIC_INTERFACE
def accept_collection(db: Session, collector: User, collection: Collection, outbox: Optional[List[Notice]] = None) -> Collection:
    if collection.collector_id is not None and collection.collector_id != collector.id:
        raise ConflictError("Collection already assigned to another collector")
    if collection.status not in (S.PENDING.value, S.SCHEDULED.value, S.CONFIRMED.value):
        raise ConflictError(f"Cannot accept a collection that is {collection.status}")

    collection.collector_id = collector.id
    db.flush()
    record_activity(db, collector.id, "collection_accepted", f"Accepted a {collection.waste_type} pickup")

    if outbox is not None:
        outbox.append(
            Notice(
                [collection.user_id],
                relay.collection_event(
                    relay.COLLECTION_UPDATE, collection, f"{collector.full_name} will collect your {collection.waste_type} waste"
                ),
            )
        )
    return collection


# PUBLIC_INTERFACE
def update_collection(
    db: Session, user: User, collection: Collection, updates: Dict[str, Any], outbox: Optional[List[Notice]] = None
) -> Collection:
    """
    Apply `updates` on behalf of `user`.

    Owners may edit pickup details and cancel. The assigned collector may move
    the status forward and record the collected amount.
    """
    owner = is_owner(user, collection)
    collector = is_assigned_collector(user, collection)
    if not (owner or collector):
        raise PermissionDeniedError("You don't have ownership of this resource")

    updates = {k: v for k, v in updates.items() if v is not None or k in NULLABLE_FIELDS}

    allowed = set()
    if owner:
        allowed.update(OWNER_FIELDS)
    if collector:
        allowed.update(COLLECTOR_FIELDS)
    illegal = sorted(k for k in updates if k != "status" and k not in allowed)
    if illegal:
        raise PermissionDeniedError(f"You can't change: {', '.join(illegal)}")

    previous = collection.status
    if previous in TERMINAL and any(k != "status" for k in updates):
        raise ConflictError(f"A {previous} collection can no longer be edited")

    requested = updates.get("status")
    if requested is not None and requested != previous:
        if not can_transition(previous, requested):
            raise InvalidTransitionError(previous, requested)
        if not collector and requested != S.CANCELLED.value:
            raise PermissionDeniedError("Only the assigned collector can change this status")
        if requested == S.COMPLETED.value and not has_permission(user.role, Permissions.MARK_JOB_COMPLETE):
            raise PermissionDeniedError(f"You don't have the required permission: {Permissions.MARK_JOB_COMPLETE.name}")

    for key, value in updates.items():
        if key != "status":
            setattr(collection, key, value)

    if requested is not None and requested != previous:
        collection.status = requested
        logger.info("Collection %s: %s -> %s by user %s", collection.id, previous, requested, user.id)
        if requested == S.COMPLETED.value:
            collection.completed_date = _utcnow()
            _credit_completion(db, collection)
        elif requested == S.CANCELLED.value:
            record_activity(db, collection.user_id, "collection_cancelled", f"Cancelled a {collection.waste_type} waste collection")

        # Whoever made the change already knows; tell the other party.
        if collector:
            recipients = [collection.user_id]
        else:
            recipients = [collection.collector_id] if collection.collector_id else []
        if outbox is not None and recipients:
            outbox.append(
                Notice(
                    recipients,
                    relay.collection_event(
                        relay.COLLECTION_UPDATE,
                        collection,
                        f"Your {collection.waste_type} collection is now {requested.replace('_', ' ')}",
                        previousStatus=previous,
                    ),
                )
            )

    db.flush()
    return collection


def _credit_completion(db: Session, collection: Collection) -> None:
    record_activity(db, collection.user_id, "collection_completed", f"Completed a {collection.waste_type} waste collection")
    if collection.collector_id:
        _check_collector_badges(db, collection.collector_id)

    amount = collection.waste_amount
    if not amount:
        return

    db.add(
        Impact(
            user_id=collection.user_id,
            collection_id=collection.id,
            water_saved=amount * WATER_LITRES_PER_KG,
            co2_reduced=amount * CO2_KG_PER_KG,
            trees_equivalent=amount * TREES_PER_KG,
            energy_conserved=amount * ENERGY_KWH_PER_KG,
            waste_amount=amount,
        )
    )
    owner = db.get(User, collection.user_id)
    if owner is not None:
        increase = round(amount * SCORE_PER_KG)
        owner.sustainability_score = (owner.sustainability_score or 0) + increase
        record_activity(
            db, owner.id, "score_increase", f"Sustainability score increased by {increase} points", points=increase
        )
    db.flush()
    _check_household_badges(db, collection.user_id)


def _check_household_badges(db: Session, user_id: int) -> None:
    completed = db.scalar(
        select(func.count()).select_from(Collection).where(
            Collection.user_id == user_id, Collection.status == S.COMPLETED.value
        )
    )
    totals = db.execute(
        select(
            func.coalesce(func.sum(Impact.waste_amount), 0),
            func.coalesce(func.sum(Impact.water_saved), 0),
            func.coalesce(func.sum(Impact.energy_conserved), 0),
        ).where(Impact.user_id == user_id)
    ).one()

    if completed >= RECYCLING_CHAMPION_PICKUPS:
        award_badge(db, user_id, BadgeType.RECYCLING_CHAMPION)
    if totals[0] >= ZERO_WASTE_HERO_KG:
        award_badge(db, user_id, BadgeType.ZERO_WASTE_HERO)
    if totals[1] >= WATER_SAVER_LITRES:
        award_badge(db, user_id, BadgeType.WATER_SAVER)
    if totals[2] >= ENERGY_PRO_KWH:
        award_badge(db, user_id, BadgeType.ENERGY_PRO)


def _check_collector_badges(db: Session, collector_id: int) -> None:
    jobs = db.scalar(
        select(func.count()).select_from(Collection).where(
            Collection.collector_id == collector_id, Collection.status == S.COMPLETED.value
        )
    )
    if jobs >= COMMUNITY_LEADER_JOBS:
        award_badge(db, collector_id, BadgeType.COMMUNITY_LEADER)


# PUBLIC_INTERFACE
def rate_collection(db: Session, user: User, collection: Collection, score: int, comment: Optional[str] = None) -> Rating:
    if not is_owner(user, collection):
        raise PermissionDeniedError("Only the household that booked the pickup can rate it")
    if collection.status != S.COMPLETED.value or collection.collector_id is None:
        raise ConflictError("Only completed collections can be rated")
    existing = db.scalar(select(Rating).where(Rating.collection_id == collection.id, Rating.rater_id == user.id))
    if existing is not None:
        raise ConflictError("You have already rated this collection")

    rating = Rating(
        collection_id=collection.id,
        rater_id=user.id,
        collector_id=collection.collector_id,
        score=score,
        comment=comment,
    )
    db.add(rating)
    db.flush()
    return rating


def rating_summary(db: Session, collector_id: int) -> Dict[str, Any]:
    ratings = list(
        db.scalars(select(Rating).where(Rating.collector_id == collector_id).order_by(Rating.created_at.desc(), Rating.id.desc()))
    )
    average = round(sum(r.score for r in ratings) / len(ratings), 2) if ratings else None
    return {"collectorId": collector_id, "count": len(ratings), "average": average, "ratings": ratings}
