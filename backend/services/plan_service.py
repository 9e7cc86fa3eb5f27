from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Sequence

from sqlalchemy.orm import Session, selectinload

from db.models import (
    CHECKIN_MODE_DEFAULT,
    CHECKIN_MODE_SLOTTED,
    CheckinPlan,
    CheckinPlanTimeSlot,
    SoftDeleteLog,
)
from services.errors import InvalidSlotError, PlanNotFoundError
from services.slot_validator import validate_time_slots
from utils.datetime_utils import business_today

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotDraft:
    start_time: time
    end_time: time
    slot_name: str | None = None
    order_num: int = 0
    is_active: bool = True
    id: int | None = None


def derive_checkin_mode(slots: Sequence[Any]) -> str:
    return CHECKIN_MODE_SLOTTED if any(bool(s.is_active) for s in slots) else CHECKIN_MODE_DEFAULT


def get_owned_plan(
    db: Session,
    user_id: int,
    plan_id: int,
    *,
    require_active: bool = False,
) -> CheckinPlan:
    """Load a plan the caller owns; missing and foreign plans are indistinguishable."""
    query = (
        db.query(CheckinPlan)
        .options(selectinload(CheckinPlan.time_slots))
        .filter(
            CheckinPlan.id == plan_id,
            CheckinPlan.user_id == user_id,
            CheckinPlan.is_deleted.is_(False),
        )
    )
    if require_active:
        query = query.filter(CheckinPlan.is_active.is_(True))
    plan = query.first()
    if not plan:
        raise PlanNotFoundError()
    return plan


def list_plans(db: Session, user_id: int) -> list[CheckinPlan]:
    return (
        db.query(CheckinPlan)
        .options(selectinload(CheckinPlan.time_slots))
        .filter(CheckinPlan.user_id == user_id, CheckinPlan.is_deleted.is_(False))
        .order_by(CheckinPlan.start_date.asc(), CheckinPlan.id.asc())
        .all()
    )


def _new_slot(draft: SlotDraft) -> CheckinPlanTimeSlot:
    return CheckinPlanTimeSlot(
        slot_name=(draft.slot_name or "").strip() or None,
        start_time=draft.start_time,
        end_time=draft.end_time,
        order_num=int(draft.order_num or 0),
        is_active=bool(draft.is_active),
    )


def create_plan(
    db: Session,
    user_id: int,
    *,
    title: str,
    description: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    time_slots: Sequence[SlotDraft] | None = None,
) -> CheckinPlan:
    drafts = list(time_slots or [])
    validate_time_slots(drafts)

    plan = CheckinPlan(
        user_id=user_id,
        title=title.strip(),
        description=description,
        start_date=start_date or business_today(),
        end_date=end_date,
        is_active=True,
        is_deleted=False,
        checkin_mode=derive_checkin_mode(drafts),
    )
    for draft in drafts:
        plan.time_slots.append(_new_slot(draft))
    db.add(plan)
    db.flush()
    logger.info("Plan %s created for user %s (mode=%s, slots=%d)", plan.id, user_id, plan.checkin_mode, len(drafts))
    return plan


def _patch_time_slots(plan: CheckinPlan, drafts: Sequence[SlotDraft]) -> None:
    """Apply a full desired slot set; slots keep their ids and are never deleted."""
    existing = {slot.id: slot for slot in plan.time_slots}
    named: set[int] = set()
    for draft in drafts:
        if draft.id is None:
            continue
        if draft.id not in existing:
            raise InvalidSlotError(f"Time slot {draft.id} does not belong to this plan")
        if draft.id in named:
            raise InvalidSlotError(f"Time slot {draft.id} appears more than once")
        named.add(draft.id)

    for draft in drafts:
        if draft.id is None:
            plan.time_slots.append(_new_slot(draft))
            continue
        slot = existing[draft.id]
        slot.slot_name = (draft.slot_name or "").strip() or None
        slot.start_time = draft.start_time
        slot.end_time = draft.end_time
        slot.order_num = int(draft.order_num or 0)
        slot.is_active = bool(draft.is_active)

    for slot_id, slot in existing.items():
        if slot_id not in named:
            slot.is_active = False


def update_plan(
    db: Session,
    user_id: int,
    plan_id: int,
    *,
    title: str | None = None,
    description: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    is_active: bool | None = None,
    time_slots: Sequence[SlotDraft] | None = None,
) -> CheckinPlan:
    plan = get_owned_plan(db, user_id, plan_id)

    if time_slots is not None:
        drafts = list(time_slots)
        validate_time_slots(drafts)
        _patch_time_slots(plan, drafts)
        plan.checkin_mode = derive_checkin_mode(plan.time_slots)

    if title is not None:
        plan.title = title.strip()
    if description is not None:
        plan.description = description
    if start_date is not None:
        plan.start_date = start_date
    if end_date is not None:
        plan.end_date = end_date
    if is_active is not None:
        plan.is_active = bool(is_active)

    plan.updated_at = datetime.now(timezone.utc)
    db.flush()
    logger.info("Plan %s updated by user %s (mode=%s)", plan.id, user_id, plan.checkin_mode)
    return plan


def delete_plan(db: Session, user_id: int, plan_id: int) -> CheckinPlan:
    """Soft-delete a plan. Its check-ins stay untouched."""
    plan = get_owned_plan(db, user_id, plan_id)
    now = datetime.now(timezone.utc)
    plan.is_deleted = True
    plan.deleted_at = now
    plan.updated_at = now
    db.add(
        SoftDeleteLog(
            table_name=CheckinPlan.__tablename__,
            record_id=plan.id,
            deleter_user_id=user_id,
            reason="plan_deleted",
            deleted_at=now,
        )
    )
    db.flush()
    logger.info("Plan %s soft-deleted by user %s", plan.id, user_id)
    return plan


def slot_to_dict(slot: CheckinPlanTimeSlot) -> dict[str, Any]:
    return {
        "id": slot.id,
        "slot_name": slot.slot_name,
        "start_time": slot.start_time.isoformat() if slot.start_time else None,
        "end_time": slot.end_time.isoformat() if slot.end_time else None,
        "order_num": slot.order_num,
        "is_active": bool(slot.is_active),
    }


def plan_to_dict(plan: CheckinPlan) -> dict[str, Any]:
    return {
        "id": plan.id,
        "title": plan.title,
        "description": plan.description,
        "start_date": plan.start_date.isoformat() if plan.start_date else None,
        "end_date": plan.end_date.isoformat() if plan.end_date else None,
        "is_active": bool(plan.is_active),
        "checkin_mode": plan.checkin_mode,
        "time_slots": [slot_to_dict(slot) for slot in plan.active_time_slots],
        "created_at": plan.created_at.isoformat() if plan.created_at else None,
        "updated_at": plan.updated_at.isoformat() if plan.updated_at else None,
    }
