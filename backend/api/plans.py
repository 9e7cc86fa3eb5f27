from __future__ import annotations

from datetime import date, time
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.plan_service import (
    SlotDraft,
    create_plan,
    delete_plan,
    get_owned_plan,
    list_plans,
    plan_to_dict,
    update_plan,
)

router = APIRouter(prefix="/plans", tags=["plans"])


class TimeSlotPayload(BaseModel):
    id: Optional[int] = None  # set to patch an existing slot
    slot_name: Optional[str] = Field(default=None, max_length=100)
    start_time: time
    end_time: time
    order_num: int = Field(default=0, ge=0)
    is_active: bool = True

    def to_draft(self) -> SlotDraft:
        return SlotDraft(
            id=self.id,
            slot_name=self.slot_name,
            start_time=self.start_time,
            end_time=self.end_time,
            order_num=self.order_num,
            is_active=self.is_active,
        )


class PlanCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    time_slots: list[TimeSlotPayload] = Field(default_factory=list)


class PlanUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None
    time_slots: Optional[list[TimeSlotPayload]] = None  # full desired set when present


@router.get("")
def get_plans(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [plan_to_dict(p) for p in list_plans(db, user.id)]


@router.get("/{plan_id}")
def get_plan(
    plan_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return plan_to_dict(get_owned_plan(db, user.id, plan_id))


@router.post("", status_code=201)
def post_plan(
    req: PlanCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = create_plan(
        db,
        user.id,
        title=req.title,
        description=req.description,
        start_date=req.start_date,
        end_date=req.end_date,
        time_slots=[slot.to_draft() for slot in req.time_slots],
    )
    db.commit()
    db.refresh(plan)
    return plan_to_dict(plan)


@router.put("/{plan_id}")
def put_plan(
    plan_id: int,
    req: PlanUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = update_plan(
        db,
        user.id,
        plan_id,
        title=req.title,
        description=req.description,
        start_date=req.start_date,
        end_date=req.end_date,
        is_active=req.is_active,
        time_slots=[slot.to_draft() for slot in req.time_slots] if req.time_slots is not None else None,
    )
    db.commit()
    db.refresh(plan)
    return plan_to_dict(plan)


@router.delete("/{plan_id}")
def remove_plan(
    plan_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    delete_plan(db, user.id, plan_id)
    db.commit()
    return {"status": "deleted", "id": plan_id}
