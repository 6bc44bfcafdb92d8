from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pipapal.api.schemas import RecyclingCenterOut
from pipapal.db.models import RecyclingCenter
from pipapal.db.session import get_db

router = APIRouter(prefix="/api/recycling-centers", tags=["Recycling Centers"])


def _ordered(stmt):
    return stmt.order_by(RecyclingCenter.name.asc(), RecyclingCenter.id.asc())


@router.get("", response_model=List[RecyclingCenterOut], summary="All recycling centers")
def list_centers(db: Session = Depends(get_db)):
    return list(db.scalars(_ordered(select(RecyclingCenter))))


@router.get("/city/{city}", response_model=List[RecyclingCenterOut], summary="Recycling centers in a city")
def centers_by_city(city: str, db: Session = Depends(get_db)):
    stmt = select(RecyclingCenter).where(func.lower(RecyclingCenter.city) == city.strip().lower())
    return list(db.scalars(_ordered(stmt)))


@router.get(
    "/waste-type/{waste_type}", response_model=List[RecyclingCenterOut], summary="Recycling centers taking a waste type"
)
def centers_by_waste_type(waste_type: str, db: Session = Depends(get_db)):
    """Centers whose accepted waste types include `waste_type`."""
    wanted = waste_type.strip().lower()
    centers = db.scalars(_ordered(select(RecyclingCenter)))
    return [c for c in centers if wanted in (t.lower() for t in c.waste_types or [])]


@router.get("/{center_id}", response_model=RecyclingCenterOut, summary="One recycling center")
def get_center(center_id: int, db: Session = Depends(get_db)):
    center = db.get(RecyclingCenter, center_id)
    if center is None:
        raise HTTPException(status_code=404, detail="Recycling center not found")
    return center
