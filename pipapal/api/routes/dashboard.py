from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from pipapal.api.deps import get_current_user
from pipapal.api.schemas import ActivityOut, BadgeOut, EcoTipOut, ImpactOut
from pipapal.db.models import EcoTip, User
from pipapal.db.session import get_db
from pipapal.services import accounts

router = APIRouter(prefix="/api", tags=["Dashboard"])


@router.get("/impact", response_model=ImpactOut, summary="Environmental impact totals")
def impact(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return accounts.total_impact(db, user.id)


@router.get("/badges", response_model=List[BadgeOut], summary="Earned badges")
def badges(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return accounts.list_badges(db, user.id)


@router.get("/activities", response_model=List[ActivityOut], summary="Recent activity")
def activities(
    limit: int = Query(10, ge=1, le=100), user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return accounts.list_activities(db, user.id, limit)


@router.get("/ecotips", response_model=List[EcoTipOut], summary="Eco tips")
def list_eco_tips(category: Optional[str] = None, db: Session = Depends(get_db)):
    stmt = select(EcoTip)
    if category:
        stmt = stmt.where(EcoTip.category == category)
    return list(db.scalars(stmt.order_by(EcoTip.created_at.desc(), EcoTip.id.desc())))


@router.get("/ecotips/{tip_id}", response_model=EcoTipOut, summary="One eco tip")
def get_eco_tip(tip_id: int, db: Session = Depends(get_db)):
    tip = db.get(EcoTip, tip_id)
    if tip is None:
        raise HTTPException(status_code=404, detail="EcoTip not found")
    return tip
