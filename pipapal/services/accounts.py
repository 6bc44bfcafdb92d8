"""
User accounts: registration, profile updates, onboarding, and the per-user
dashboard data (impact totals, badges, activity feed).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pipapal.db.models import Activity, Badge, BadgeType, Impact, User, UserRole
from pipapal.errors import ConflictError
from pipapal.services.security import hash_password, verify_password

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "email", "address", "phone")
ONBOARDING_FIELDS = (
    "organization_type",
    "organization_name",
    "contact_person_name",
    "contact_person_position",
    "contact_person_phone",
    "contact_person_email",
    "is_certified",
    "certification_details",
    "onboarding_completed",
)
ORGANIZATION_REQUIRED = ("organization_type", "organization_name", "contact_person_name")
ORGANIZATION_OPTIONAL = ("contact_person_position", "contact_person_phone", "contact_person_email")

ONBOARDING_POINTS = 5


def record_activity(
    db: Session, user_id: int, activity_type: str, description: str, points: Optional[int] = None
) -> Activity:
    activity = Activity(user_id=user_id, activity_type=activity_type, description=description, points=points)
    db.add(activity)
    db.flush()
    return activity


def award_badge(db: Session, user_id: int, badge_type: BadgeType) -> Optional[Badge]:
    """Award `badge_type` once; returns None if the user already has it."""
    existing = db.scalar(select(Badge).where(Badge.user_id == user_id, Badge.badge_type == badge_type.value))
    if existing is not None:
        return None
    badge = Badge(user_id=user_id, badge_type=badge_type.value)
    db.add(badge)
    db.flush()
    record_activity(db, user_id, "badge_earned", f"Earned the {badge_type.value} badge")
    logger.info("Awarded %s to user %s", badge_type.value, user_id)
    return badge


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.scalar(select(User).where(User.username == username))


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == email))


# PUBLIC_INTERFACE
def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    full_name: str,
    password: Optional[str] = None,
    role: str = UserRole.HOUSEHOLD.value,
    address: Optional[str] = None,
    phone: Optional[str] = None,
    firebase_uid: Optional[str] = None,
    email_verified: bool = False,
) -> User:
    """
    Create a user with a zeroed impact row, the eco_starter badge and a
    welcome activity. Caller commits.
    """
    if get_user_by_username(db, username):
        raise ConflictError("Username already exists")
    if get_user_by_email(db, email):
        raise ConflictError("Email already exists")

    user = User(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password) if password else None,
        role=role,
        address=address,
        phone=phone,
        firebase_uid=firebase_uid,
        email_verified=email_verified,
        sustainability_score=0,
    )
    db.add(user)
    db.flush()

    db.add(Impact(user_id=user.id))
    award_badge(db, user.id, BadgeType.ECO_STARTER)
    record_activity(db, user.id, "registration", "Joined PipaPal")
    logger.info("Registered user %s (%s)", user.id, role)
    return user


# PUBLIC_INTERFACE
def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    user = get_user_by_username(db, username)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


# PUBLIC_INTERFACE
def update_profile(db: Session, user: User, data: Dict[str, Any]) -> User:
    """Apply whitelisted profile/onboarding fields; email must stay unique."""
    updates = {k: v for k, v in data.items() if k in PROFILE_FIELDS + ONBOARDING_FIELDS and v is not None}

    new_email = updates.get("email")
    if new_email and new_email != user.email:
        other = get_user_by_email(db, new_email)
        if other is not None and other.id != user.id:
            raise ConflictError("Email already in use")
        user.email_verified = False

    for key, value in updates.items():
        setattr(user, key, value)
    db.flush()
    return user


# PUBLIC_INTERFACE
def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ConflictError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.flush()


# PUBLIC_INTERFACE
def complete_onboarding(db: Session, user: User, data: Dict[str, Any]) -> User:
    """Record role-specific onboarding details and mark onboarding complete."""
    updates: Dict[str, Any] = {"onboarding_completed": True}

    if user.role == UserRole.ORGANIZATION.value:
        for name in ORGANIZATION_REQUIRED:
            if not data.get(name):
                raise ConflictError(f"Missing required field: {name}")
            updates[name] = data[name]
        for name in ORGANIZATION_OPTIONAL:
            if data.get(name):
                updates[name] = data[name]
    elif user.role in (UserRole.COLLECTOR.value, UserRole.RECYCLER.value):
        if data.get("is_certified") is not None:
            updates["is_certified"] = data["is_certified"]
            if data["is_certified"] and data.get("certification_details"):
                updates["certification_details"] = data["certification_details"]

    for key, value in updates.items():
        setattr(user, key, value)
    record_activity(db, user.id, "onboarding", "Completed profile setup", points=ONBOARDING_POINTS)
    db.flush()
    return user


# PUBLIC_INTERFACE
def total_impact(db: Session, user_id: int) -> Dict[str, float]:
    row = db.execute(
        select(
            func.coalesce(func.sum(Impact.water_saved), 0),
            func.coalesce(func.sum(Impact.co2_reduced), 0),
            func.coalesce(func.sum(Impact.trees_equivalent), 0),
            func.coalesce(func.sum(Impact.energy_conserved), 0),
            func.coalesce(func.sum(Impact.waste_amount), 0),
        ).where(Impact.user_id == user_id)
    ).one()
    return {
        "waterSaved": float(row[0]),
        "co2Reduced": float(row[1]),
        "treesEquivalent": float(row[2]),
        "energyConserved": float(row[3]),
        "wasteAmount": float(row[4]),
    }


def list_badges(db: Session, user_id: int) -> List[Badge]:
    return list(db.scalars(select(Badge).where(Badge.user_id == user_id).order_by(Badge.awarded_at.desc(), Badge.id.desc())))


def list_activities(db: Session, user_id: int, limit: int = 10) -> List[Activity]:
    stmt = (
        select(Activity)
        .where(Activity.user_id == user_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))
