from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.calendar_service import get_day_detail, get_month_status
from services.checkin_service import checkin_to_dict, record_live, record_retro

router = APIRouter(prefix="/checkins", tags=["checkins"])


class DailyCheckinRequest(BaseModel):
    plan_id: int
    time_slot_id: Optional[int] = None
    image_urls: list[str] = Field(default_factory=list)
    note: Optional[str] = Field(default=None, max_length=2000)


class RetroCheckinRequest(DailyCheckinRequest):
    check_date: date = Field(alias="date")


@router.post("/daily", status_code=201)
def daily_checkin(
    req: DailyCheckinRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    checkin = record_live(
        db,
        user.id,
        plan_id=req.plan_id,
        slot_id=req.time_slot_id,
        image_urls=req.image_urls,
        note=req.note,
    )
    db.commit()
    db.refresh(checkin)
    return checkin_to_dict(checkin)


@router.post("/retro", status_code=201)
def retro_checkin(
    req: RetroCheckinRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    checkin = record_retro(
        db,
        user.id,
        plan_id=req.plan_id,
        check_date=req.check_date,
        slot_id=req.time_slot_id,
        image_urls=req.image_urls,
        note=req.note,
    )
    db.commit()
    db.refresh(checkin)
    return checkin_to_dict(checkin)


@router.get("/calendar")
def calendar(
    plan_id: int,
    year: int = Query(ge=1, le=9999),
    month: int = Query(ge=1, le=12),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_month_status(db, user.id, plan_id=plan_id, year=year, month=month)


@router.get("/detail")
def detail(
    plan_id: int,
    check_date: date = Query(alias="date"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_day_detail(db, user.id, plan_id=plan_id, check_date=check_date)
