"""
The recycling marketplace.

Recyclers can flag interest in a completed pickup's material, or bid on the
listings collectors publish for sorted material. A listing moves through
`LISTING_TRANSITIONS`; accepting a bid puts it on hold (`pending_sale`) and
declines the other open bids.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from pipapal.db.models import (
    BidStatus,
    Collection,
    CollectionStatus,
    InterestStatus,
    MaterialBid,
    MaterialInterest,
    MaterialListing,
    MaterialStatus,
    User,
    UserRole,
)
from pipapal.errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError
from pipapal.realtime import hub as relay
from pipapal.services.collections import Notice, get_collection

logger = logging.getLogger(__name__)

M = MaterialStatus

LISTING_TRANSITIONS = {
    M.AVAILABLE: {M.PENDING_SALE, M.EXPIRED, M.WITHDRAWN},
    M.PENDING_SALE: {M.AVAILABLE, M.SOLD, M.WITHDRAWN},
    M.SOLD: {M.DELIVERED},
    M.DELIVERED: {M.COMPLETED},
    M.COMPLETED: set(),
    M.EXPIRED: set(),
    M.WITHDRAWN: set(),
}
# A collection has at most one listing in these states.
OPEN_LISTING = (M.AVAILABLE.value, M.PENDING_SALE.value, M.SOLD.value, M.DELIVERED.value)


# PUBLIC_INTERFACE
def express_interest(
    db: Session,
    recycler: User,
    collection_id: int,
    message: Optional[str] = None,
    offered_price: Optional[float] = None,
    outbox: Optional[List[Notice]] = None,
) -> MaterialInterest:
    collection = get_collection(db, collection_id)
    if collection.status != CollectionStatus.COMPLETED.value or collection.collector_id is None:
        raise ConflictError("Material is only available once the pickup is completed")

    existing = db.scalar(
        select(MaterialInterest).where(
            MaterialInterest.recycler_id == recycler.id, MaterialInterest.collection_id == collection_id
        )
    )
    if existing is not None:
        raise ConflictError("You have already expressed interest in this material")

    interest = MaterialInterest(
        recycler_id=recycler.id, collection_id=collection_id, message=message, offered_price=offered_price
    )
    db.add(interest)
    db.flush()
    logger.info("Recycler %s interested in collection %s", recycler.id, collection_id)

    if outbox is not None:
        outbox.append(
            Notice(
                [collection.collector_id],
                relay.event(
                    relay.MATERIAL_INTEREST,
                    f"{recycler.full_name} is interested in your {collection.waste_type} material",
                    interestId=interest.id,
                    collectionId=collection.id,
                    status=interest.status,
                ),
            )
        )
    return interest


def list_interests(db: Session, user: User) -> List[MaterialInterest]:
    stmt = select(MaterialInterest)
    if user.role == UserRole.RECYCLER.value:
        stmt = stmt.where(MaterialInterest.recycler_id == user.id)
    elif user.role == UserRole.COLLECTOR.value:
        stmt = stmt.join(Collection, MaterialInterest.collection_id == Collection.id).where(
            Collection.collector_id == user.id
        )
    else:
        return []
    return list(db.scalars(stmt.order_by(MaterialInterest.created_at.desc(), MaterialInterest.id.desc())))


# PUBLIC_INTERFACE
def respond_to_interest(
    db: Session, collector: User, interest_id: int, status: str, outbox: Optional[List[Notice]] = None
) -> MaterialInterest:
    interest = db.get(MaterialInterest, interest_id)
    if interest is None:
        raise NotFoundError("Interest not found")
    if interest.collection.collector_id != collector.id:
        raise PermissionDeniedError("Only the collector holding this material can respond")
    if interest.status != InterestStatus.PENDING.value:
        raise ConflictError(f"Interest already {interest.status}")
    if status not in (InterestStatus.ACCEPTED.value, InterestStatus.DECLINED.value):
        raise ConflictError("Status must be accepted or declined")

    interest.status = status
    db.flush()

    if outbox is not None:
        outbox.append(
            Notice(
                [interest.recycler_id],
                relay.event(
                    relay.MATERIAL_INTEREST,
                    f"Your interest in {interest.collection.waste_type} material was {status}",
                    interestId=interest.id,
                    collectionId=interest.collection_id,
                    status=status,
                ),
            )
        )
    return interest


# ----------------------- Listings and bids -----------------------
def can_move_listing(current: str, requested: str) -> bool:
    if current == requested:
        return True
    try:
        return M(requested) in LISTING_TRANSITIONS[M(current)]
    except ValueError:
        return False


def get_listing(db: Session, listing_id: int) -> MaterialListing:
    listing = db.get(MaterialListing, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    return listing


def _require_seller(collector: User, listing: MaterialListing) -> None:
    if listing.collector_id != collector.id:
        raise PermissionDeniedError("Only the collector who listed this material can manage it")


def _bid_notice(bid: MaterialBid, message: str) -> Notice:
    return Notice(
        [bid.recycler_id],
        relay.event(relay.MATERIAL_BID, message, bidId=bid.id, listingId=bid.material_id, status=bid.status),
    )


# PUBLIC_INTERFACE
def create_listing(db: Session, collector: User, collection_id: int, data: Dict[str, Any]) -> MaterialListing:
    """
    Publish the material from one of the collector's completed pickups.

    Material type, quantity and location default to the pickup's waste type,
    recorded amount and address.
    """
    collection = get_collection(db, collection_id)
    if collection.collector_id != collector.id:
        raise PermissionDeniedError("Only the collector who handled this pickup can list its material")
    if collection.status != CollectionStatus.COMPLETED.value:
        raise ConflictError("Material can only be listed once the pickup is completed")

    live = db.scalar(
        select(MaterialListing).where(
            MaterialListing.collection_id == collection_id, MaterialListing.status.in_(OPEN_LISTING)
        )
    )
    if live is not None:
        raise ConflictError("This material is already listed")

    quantity = data.get("quantity") or collection.waste_amount
    if not quantity:
        raise ConflictError("A listing needs a quantity in kg")

    listing = MaterialListing(
        collector_id=collector.id,
        collection_id=collection_id,
        material_type=data.get("material_type") or collection.waste_type,
        quantity=quantity,
        description=data.get("description"),
        location=data.get("location") or collection.address,
        price=data.get("price"),
        status=M.AVAILABLE.value,
    )
    db.add(listing)
    db.flush()
    logger.info("Collector %s listed %s kg of %s (listing %s)", collector.id, quantity, listing.material_type, listing.id)
    return listing


def list_listings(
    db: Session, status: Optional[str] = M.AVAILABLE.value, material_type: Optional[str] = None
) -> List[MaterialListing]:
    stmt = select(MaterialListing)
    if status:
        stmt = stmt.where(MaterialListing.status == status)
    if material_type:
        stmt = stmt.where(MaterialListing.material_type == material_type)
    return list(db.scalars(stmt.order_by(MaterialListing.created_at.desc(), MaterialListing.id.desc())))


def list_collector_listings(db: Session, collector: User) -> List[MaterialListing]:
    stmt = (
        select(MaterialListing)
        .where(MaterialListing.collector_id == collector.id)
        .order_by(MaterialListing.created_at.desc(), MaterialListing.id.desc())
    )
    return list(db.scalars(stmt))


# PUBLIC_INTERFACE
def update_listing_status(
    db: Session, collector: User, listing: MaterialListing, status: str, outbox: Optional[List[Notice]] = None
) -> MaterialListing:
    """
    Move a listing along its lifecycle.

    Going back to `available`, or ending as `expired` or `withdrawn`, declines
    every open or accepted bid. The buyer hears about each later step.
    """
    _require_seller(collector, listing)
    previous = listing.status
    if status == previous:
        return listing
    if not can_move_listing(previous, status):
        raise InvalidTransitionError(previous, status)

    listing.status = status
    logger.info("Listing %s: %s -> %s", listing.id, previous, status)

    notices = []
    if status in (M.AVAILABLE.value, M.EXPIRED.value, M.WITHDRAWN.value):
        for bid in listing.bids:
            if bid.status in (BidStatus.PENDING.value, BidStatus.ACCEPTED.value):
                bid.status = BidStatus.DECLINED.value
                notices.append(_bid_notice(bid, f"The {listing.material_type} listing is no longer on offer"))
    else:
        for bid in listing.bids:
            if bid.status == BidStatus.ACCEPTED.value:
                notices.append(
                    _bid_notice(bid, f"Your {listing.material_type} purchase is now {status.replace('_', ' ')}")
                )

    db.flush()
    if outbox is not None:
        outbox.extend(notices)
    return listing


# PUBLIC_INTERFACE
def place_bid(
    db: Session,
    recycler: User,
    listing: MaterialListing,
    amount: float,
    message: Optional[str] = None,
    outbox: Optional[List[Notice]] = None,
) -> MaterialBid:
    if listing.status != M.AVAILABLE.value:
        raise ConflictError("This listing is not accepting bids")
    open_bid = db.scalar(
        select(MaterialBid).where(
            MaterialBid.material_id == listing.id,
            MaterialBid.recycler_id == recycler.id,
            MaterialBid.status == BidStatus.PENDING.value,
        )
    )
    if open_bid is not None:
        raise ConflictError("You already have an open bid on this listing")

    bid = MaterialBid(listing=listing, recycler_id=recycler.id, amount=amount, message=message)
    db.add(bid)
    db.flush()
    logger.info("Recycler %s bid %s KES on listing %s", recycler.id, amount, listing.id)

    if outbox is not None:
        outbox.append(
            Notice(
                [listing.collector_id],
                relay.event(
                    relay.MATERIAL_BID,
                    f"{recycler.full_name} bid KES {amount:g} for your {listing.material_type}",
                    bidId=bid.id,
                    listingId=listing.id,
                    status=bid.status,
                ),
            )
        )
    return bid


def list_listing_bids(collector: User, listing: MaterialListing) -> List[MaterialBid]:
    _require_seller(collector, listing)
    return list(listing.bids)


def list_recycler_bids(db: Session, recycler: User) -> List[MaterialBid]:
    stmt = (
        select(MaterialBid)
        .where(MaterialBid.recycler_id == recycler.id)
        .order_by(MaterialBid.created_at.desc(), MaterialBid.id.desc())
    )
    return list(db.scalars(stmt))


# PUBLIC_INTERFACE
def respond_to_bid(
    db: Session, collector: User, bid_id: int, status: str, outbox: Optional[List[Notice]] = None
) -> MaterialBid:
    bid = db.get(MaterialBid, bid_id)
    if bid is None:
        raise NotFoundError("Bid not found")
    listing = bid.listing
    _require_seller(collector, listing)
    if bid.status != BidStatus.PENDING.value:
        raise ConflictError(f"Bid already {bid.status}")
    if status not in (BidStatus.ACCEPTED.value, BidStatus.DECLINED.value):
        raise ConflictError("Status must be accepted or declined")
    if listing.status != M.AVAILABLE.value:
        raise ConflictError("This listing is not accepting bids")

    notices = []
    bid.status = status
    notices.append(_bid_notice(bid, f"Your bid on {listing.material_type} was {status}"))
    if status == BidStatus.ACCEPTED.value:
        listing.status = M.PENDING_SALE.value
        for other in listing.bids:
            if other.id != bid.id and other.status == BidStatus.PENDING.value:
                other.status = BidStatus.DECLINED.value
                notices.append(_bid_notice(other, f"Your bid on {listing.material_type} was declined"))
    db.flush()

    if outbox is not None:
        outbox.extend(notices)
    return bid
