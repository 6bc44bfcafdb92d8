"""
SQLAlchemy ORM models for the PipaPal marketplace.

Status and role columns are plain text guarded by CHECK constraints built from
the enums below, so the database rejects values the API would never produce.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pipapal.db.base import Base


class UserRole(str, enum.Enum):
    HOUSEHOLD = "household"
    COLLECTOR = "collector"
    RECYCLER = "recycler"
    ORGANIZATION = "organization"


class CollectionStatus(str, enum.Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WasteType(str, enum.Enum):
    GENERAL = "general"
    PLASTIC = "plastic"
    PAPER = "paper"
    GLASS = "glass"
    METAL = "metal"
    ELECTRONIC = "electronic"
    ORGANIC = "organic"
    HAZARDOUS = "hazardous"
    CARDBOARD = "cardboard"


class BadgeType(str, enum.Enum):
    ECO_STARTER = "eco_starter"
    WATER_SAVER = "water_saver"
    ENERGY_PRO = "energy_pro"
    RECYCLING_CHAMPION = "recycling_champion"
    ZERO_WASTE_HERO = "zero_waste_hero"
    COMMUNITY_LEADER = "community_leader"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FeedbackStatus(str, enum.Enum):
    OPEN = "open"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


class InterestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class MaterialStatus(str, enum.Enum):
    AVAILABLE = "available"
    PENDING_SALE = "pending_sale"
    SOLD = "sold"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"


class BidStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


def _in_check(column: str, values: type[enum.Enum]) -> str:
    quoted = ",".join(f"'{v.value}'" for v in values)
    return f"{column} in ({quoted})"


class TimestampMixin:
    """Common timestamp columns in the schema."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class User(Base, TimestampMixin):
    """users table."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    firebase_uid: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)

    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, server_default=UserRole.HOUSEHOLD.value)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    phone_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sustainability_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Onboarding
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    organization_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    organization_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_person_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_person_position: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_person_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_person_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_certified: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    certification_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    collections: Mapped[List["Collection"]] = relationship(
        "Collection", back_populates="user", foreign_keys="Collection.user_id"
    )
    badges: Mapped[List["Badge"]] = relationship("Badge", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (CheckConstraint(_in_check("role", UserRole), name="users_role_check"),)


class Collection(Base, TimestampMixin):
    """collections table: a scheduled pickup."""

    __tablename__ = "collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    collector_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    waste_type: Mapped[str] = mapped_column(Text, nullable=False)
    waste_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=CollectionStatus.SCHEDULED.value)

    scheduled_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    waste_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    address: Mapped[str] = mapped_column(Text, nullable=False)
    # {"lat": float, "lng": float}
    location: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped[User] = relationship("User", back_populates="collections", foreign_keys=[user_id])
    collector: Mapped[Optional[User]] = relationship("User", foreign_keys=[collector_id])

    __table_args__ = (
        CheckConstraint(_in_check("status", CollectionStatus), name="collections_status_check"),
        CheckConstraint(_in_check("waste_type", WasteType), name="collections_waste_type_check"),
        CheckConstraint("waste_amount IS NULL OR waste_amount >= 0", name="collections_waste_amount_check"),
    )


class Impact(Base):
    """impacts table: environmental impact attributed to a user."""

    __tablename__ = "impacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    collection_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="SET NULL"), nullable=True
    )

    water_saved: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    co2_reduced: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    trees_equivalent: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    energy_conserved: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    waste_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Badge(Base):
    """badges table."""

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    badge_type: Mapped[str] = mapped_column(Text, nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="badges")

    __table_args__ = (
        UniqueConstraint("user_id", "badge_type", name="badges_user_id_badge_type_key"),
        CheckConstraint(_in_check("badge_type", BadgeType), name="badges_badge_type_check"),
    )


class EcoTip(Base):
    """eco_tips table."""

    __tablename__ = "eco_tips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Activity(Base):
    """activities table: the user's recent-activity feed."""

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Payment(Base, TimestampMixin):
    """payments table: one M-Pesa STK push attempt."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    collection_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="SET NULL"), nullable=True
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False, server_default="KES")
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=PaymentStatus.PENDING.value)

    merchant_request_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    checkout_request_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    mpesa_receipt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    result_desc: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(_in_check("status", PaymentStatus), name="payments_status_check"),
        CheckConstraint("amount > 0", name="payments_amount_check"),
    )


class Rating(Base):
    """ratings table: a household's rating of the collector who served a pickup."""

    __tablename__ = "ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    rater_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    collector_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("collection_id", "rater_id", name="ratings_collection_id_rater_id_key"),
        CheckConstraint("score >= 1 AND score <= 5", name="ratings_score_check"),
    )


class Feedback(Base, TimestampMixin):
    """feedback table: product feedback from any user."""

    __tablename__ = "feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=FeedbackStatus.OPEN.value)

    __table_args__ = (CheckConstraint(_in_check("status", FeedbackStatus), name="feedback_status_check"),)


class MaterialInterest(Base, TimestampMixin):
    """material_interests table: a recycler's interest in a completed pickup's material."""

    __tablename__ = "material_interests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recycler_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    offered_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=InterestStatus.PENDING.value)

    collection: Mapped[Collection] = relationship("Collection")

    __table_args__ = (
        UniqueConstraint("recycler_id", "collection_id", name="material_interests_recycler_id_collection_id_key"),
        CheckConstraint(_in_check("status", InterestStatus), name="material_interests_status_check"),
        CheckConstraint("offered_price IS NULL OR offered_price >= 0", name="material_interests_offered_price_check"),
    )


class MaterialListing(Base, TimestampMixin):
    """material_listings table: sorted material a collector offers to recyclers."""

    __tablename__ = "material_listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collector_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    material_type: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=MaterialStatus.AVAILABLE.value)
    # KES per kg
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    bids: Mapped[List["MaterialBid"]] = relationship(
        "MaterialBid", back_populates="listing", cascade="all, delete-orphan", order_by="MaterialBid.id"
    )

    __table_args__ = (
        CheckConstraint(_in_check("status", MaterialStatus), name="material_listings_status_check"),
        CheckConstraint(_in_check("material_type", WasteType), name="material_listings_material_type_check"),
        CheckConstraint("quantity > 0", name="material_listings_quantity_check"),
        CheckConstraint("price IS NULL OR price >= 0", name="material_listings_price_check"),
    )


class MaterialBid(Base, TimestampMixin):
    """material_bids table: a recycler's offer (KES) for a listing."""

    __tablename__ = "material_bids"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    material_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("material_listings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recycler_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=BidStatus.PENDING.value)

    listing: Mapped[MaterialListing] = relationship("MaterialListing", back_populates="bids")

    __table_args__ = (
        CheckConstraint(_in_check("status", BidStatus), name="material_bids_status_check"),
        CheckConstraint("amount > 0", name="material_bids_amount_check"),
    )


class RecyclingCenter(Base):
    """recycling_centers table: drop-off and processing facilities."""

    __tablename__ = "recycling_centers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    operator: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    facility_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    waste_types: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    county: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    po_box: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Message(Base):
    """messages table: direct chat between two users."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    collection_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
