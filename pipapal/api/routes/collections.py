from typing import List, Literal

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from pipapal.api.deps import dispatch, get_current_user, require_permission, require_role
from pipapal.api.schemas import CollectionCreate, CollectionOut, CollectionUpdate, RatingBody, RatingOut, RatingSummary
from pipapal.config import settings
from pipapal.db.models import User, UserRole
from pipapal.db.session import get_db
from pipapal.routing import plan_route
from pipapal.services import collections as service
from pipapal.services.permissions import Permissions

router = APIRouter(prefix="/api", tags=["Collections"])


@router.get("/collections", response_model=List[CollectionOut], summary="My collections")
def list_collections(
    user: User = Depends(require_permission(Permissions.VIEW_PICKUP_HISTORY)), db: Session = Depends(get_db)
):
    return service.list_for_user(db, user)


@router.get("/collections/upcoming", response_model=List[CollectionOut], summary="Upcoming collections")
def upcoming_collections(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return service.list_upcoming(db, user)


@router.get("/collections/available", response_model=List[CollectionOut], summary="Unclaimed pickups")
def available_collections(
    user: User = Depends(require_permission(Permissions.ACCEPT_PICKUP_JOBS)), db: Session = Depends(get_db)
):
    return service.list_available(db)


@router.get("/collections/{collection_id}", response_model=CollectionOut, summary="Collection details")
def get_collection(collection_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return service.get_visible_collection(db, user, collection_id)


@router.post("/collections", response_model=CollectionOut, status_code=201, summary="Schedule a pickup")
def create_collection(
    body: CollectionCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_permission(Permissions.REQUEST_PICKUP)),
    db: Session = Depends(get_db),
):
    outbox = []
    collection = service.create_collection(db, user, body.model_dump(exclude_none=True), outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return collection


@router.patch("/collections/{collection_id}", response_model=CollectionOut, summary="Update a collection")
def update_collection(
    collection_id: int,
    body: CollectionUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    collection = service.get_collection(db, collection_id)
    outbox = []
    service.update_collection(db, user, collection, body.model_dump(exclude_unset=True), outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return collection


@router.post("/collections/{collection_id}/accept", response_model=CollectionOut, summary="Claim a pickup")
def accept_collection(
    collection_id: int,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_permission(Permissions.ACCEPT_PICKUP_JOBS)),
    db: Session = Depends(get_db),
):
    collection = service.get_collection(db, collection_id)
    outbox = []
    service.accept_collection(db, user, collection, outbox)
    db.commit()
    dispatch(background_tasks, outbox)
    return collection


@router.post(
    "/collections/{collection_id}/rating", response_model=RatingOut, status_code=201, summary="Rate the collector"
)
def rate_collection(
    collection_id: int, body: RatingBody, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    collection = service.get_collection(db, collection_id)
    rating = service.rate_collection(db, user, collection, body.score, body.comment)
    db.commit()
    return rating


@router.get("/users/{user_id}/ratings", response_model=RatingSummary, summary="A collector's ratings")
def collector_ratings(user_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return service.rating_summary(db, user_id)


@router.get("/collector/route", summary="Plan today's pickup route")
def collector_route(
    mode: Literal["optimal", "by_waste_type"] = Query("optimal"),
    waste_type: str = Query("all"),
    user: User = Depends(require_role(UserRole.COLLECTOR.value)),
    db: Session = Depends(get_db),
):
    """
    Visiting order and planning estimates for the collector's active pickups.

    Returns `{"route": null}` when nothing is scheduled or in progress.
    """
    plan = plan_route(
        service.list_route_candidates(db, user),
        depot=(settings.depot_lat, settings.depot_lng),
        mode=mode,
        waste_type=waste_type,
    )
    return {"route": plan.as_dict() if plan else None}
