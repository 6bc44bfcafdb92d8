from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from pipapal.api.deps import dispatch, get_current_user, require_permission
from pipapal.api.schemas import (
    BidCreate,
    BidOut,
    BidUpdate,
    CollectionOut,
    InterestCreate,
    InterestOut,
    InterestUpdate,
    ListingCreate,
    ListingOut,
    ListingUpdate,
)
from pipapal.db.models import User
from pipapal.db.session import get_db
from pipapal.services import collections, marketplace
from pipapal.services.permissions import Permissions

router = APIRouter(prefix="/api", tags=["Marketplace"])


@router.get("/materials", response_model=List[CollectionOut], summary="Collected material on offer")
def list_materials(
    user: User = Depends(require_permission(Permissions.VIEW_MARKETPLACE)), db: Session = Depends(get_db)
):
    return collections.list_completed(db)


@router.post("/material-interests", response_model=InterestOut, status_code=201, summary="Express interest in material")
def create_interest(
    body: InterestCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_permission(Permissions.BUY_RECYCLABLES)),
    db: Session = Depends(get_db),
):
    outbox = []
    interest = marketplace.express_interest(
        db, user, body.collection_id, message=body.message, offered_price=body.offered_price, outbox=outbox
    )
    db.commit()
    dispatch(background_tasks, outbox)
    return interest


@router.get("/material-interests", response_model=List[InterestOut], summary="Interests I sent or received")
def list_interests(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return marketplace.list_interests(db, user)


@router.patch("/material-interests/{interest_id}", response_model=InterestOut, summary="Accept or decline an interest")
def respond_to_interest(
    interest_id: int,
    body: InterestUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_permission(Permissions.LIST_MATERIALS)),
    db: Session = Depends(get_db),
):
    outbox = []
    interest = marketplace.respond_to_interest(db, user, interest_id, body.status, outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return interest


@router.post("/material-listings", response_model=ListingOut, status_code=201, summary="List collected material")
def create_listing(
    body: ListingCreate,
    user: User = Depends(require_permission(Permissions.LIST_MATERIALS)),
    db: Session = Depends(get_db),
):
    listing = marketplace.create_listing(
        db, user, body.collection_id, body.model_dump(exclude={"collection_id"}, exclude_none=True)
    )
    db.commit()
    return listing


@router.get("/material-listings", response_model=List[ListingOut], summary="Browse material listings")
def browse_listings(
    status: Optional[str] = Query("available"),
    material_type: Optional[str] = None,
    user: User = Depends(require_permission(Permissions.VIEW_WASTE_LISTINGS)),
    db: Session = Depends(get_db),
):
    return marketplace.list_listings(db, status=status, material_type=material_type)


@router.get("/material-listings/mine", response_model=List[ListingOut], summary="My material listings")
def my_listings(user: User = Depends(require_permission(Permissions.LIST_MATERIALS)), db: Session = Depends(get_db)):
    return marketplace.list_collector_listings(db, user)


@router.get("/material-listings/{listing_id}", response_model=ListingOut, summary="One material listing")
def get_listing(
    listing_id: int, user: User = Depends(require_permission(Permissions.VIEW_MARKETPLACE)), db: Session = Depends(get_db)
):
    return marketplace.get_listing(db, listing_id)


@router.patch("/material-listings/{listing_id}", response_model=ListingOut, summary="Change a listing's status")
def update_listing(
    listing_id: int,
    body: ListingUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_permission(Permissions.LIST_MATERIALS)),
    db: Session = Depends(get_db),
):
    listing = marketplace.get_listing(db, listing_id)
    outbox = []
    marketplace.update_listing_status(db, user, listing, body.status, outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return listing


@router.post(
    "/material-listings/{listing_id}/bids", response_model=BidOut, status_code=201, summary="Bid on a listing"
)
def place_bid(
    listing_id: int,
    body: BidCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_permission(Permissions.BUY_RECYCLABLES)),
    db: Session = Depends(get_db),
):
    listing = marketplace.get_listing(db, listing_id)
    outbox = []
    bid = marketplace.place_bid(db, user, listing, body.amount, body.message, outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return bid


@router.get("/material-listings/{listing_id}/bids", response_model=List[BidOut], summary="Bids on my listing")
def listing_bids(
    listing_id: int,
    user: User = Depends(require_permission(Permissions.LIST_MATERIALS)),
    db: Session = Depends(get_db),
):
    return marketplace.list_listing_bids(user, marketplace.get_listing(db, listing_id))


@router.get("/material-bids", response_model=List[BidOut], summary="My bids")
def my_bids(user: User = Depends(require_permission(Permissions.BUY_RECYCLABLES)), db: Session = Depends(get_db)):
    return marketplace.list_recycler_bids(db, user)


@router.patch("/material-bids/{bid_id}", response_model=BidOut, summary="Accept or decline a bid")
def respond_to_bid(
    bid_id: int,
    body: BidUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_permission(Permissions.LIST_MATERIALS)),
    db: Session = Depends(get_db),
):
    outbox = []
    bid = marketplace.respond_to_bid(db, user, bid_id, body.status, outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return bid
