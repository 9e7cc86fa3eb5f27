from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Any

from sqlalchemy.orm import Session, selectinload

from db.models import CHECKIN_MODE_SLOTTED, Checkin, CheckinPlan, CheckinPlanTimeSlot, CheckinStatus
from services.checkin_service import checkin_to_dict
from services.errors import PlanNotFoundError
from utils.datetime_utils import month_bounds


def _viewable_plan(db: Session, user_id: int, plan_id: int) -> CheckinPlan:
    # Inactive plans stay viewable; only deleted or foreign plans are hidden.
    plan = (
        db.query(CheckinPlan)
        .filter(
            CheckinPlan.id == plan_id,
            CheckinPlan.user_id == user_id,
            CheckinPlan.is_deleted.is_(False),
        )
        .first()
    )
    if not plan:
        raise PlanNotFoundError()
    return plan


def _month_checkins(db: Session, plan_id: int, first_day: date, last_day: date) -> list[Checkin]:
    return (
        db.query(Checkin)
        .filter(
            Checkin.plan_id == plan_id,
            Checkin.check_date >= first_day,
            Checkin.check_date <= last_day,
            Checkin.is_deleted.is_(False),
        )
        .order_by(Checkin.check_date.asc(), Checkin.id.asc())
        .all()
    )


def _active_slots(db: Session, plan_id: int) -> list[CheckinPlanTimeSlot]:
    return (
        db.query(CheckinPlanTimeSlot)
        .filter(CheckinPlanTimeSlot.plan_id == plan_id, CheckinPlanTimeSlot.is_active.is_(True))
        .order_by(CheckinPlanTimeSlot.order_num.asc(), CheckinPlanTimeSlot.start_time.asc())
        .all()
    )


def aggregate_default_mode(
    checkins: list[Checkin],
    active_slot_count: int,
) -> list[dict[str, Any]]:
    """One ``status`` code per completed day.

    Without active slots a day's status is the highest status recorded that
    day. When the plan has gained slots since (rows recorded under the
    whole-day regime), a day completes only once every active slot is covered;
    it is ``RETRO`` if any contributing row is.
    """
    by_day: dict[date, list[Checkin]] = defaultdict(list)
    for row in checkins:
        by_day[row.check_date].append(row)

    result: list[dict[str, Any]] = []
    for day in sorted(by_day):
        rows = by_day[day]
        if active_slot_count == 0:
            status = max(int(row.status) for row in rows)
        else:
            checked_slots = {row.time_slot_id for row in rows if row.time_slot_id is not None}
            if len(checked_slots) < active_slot_count:
                continue
            if any(int(row.status) == CheckinStatus.RETRO for row in rows):
                status = int(CheckinStatus.RETRO)
            else:
                status = int(CheckinStatus.SUCCESS)
        result.append({
            "date": day.isoformat(),
            "checkin_mode": "default",
            "status": status,
        })
    return result


def aggregate_slotted_mode(
    checkins: list[Checkin],
    slots: list[CheckinPlanTimeSlot],
    first_day: date,
    last_day: date,
) -> list[dict[str, Any]]:
    """Per-slot statuses plus a ``checked_slots`` progress count per day."""
    by_day_slot: dict[tuple[date, int], Checkin] = {}
    for row in checkins:
        if row.time_slot_id is None:
            continue
        by_day_slot.setdefault((row.check_date, row.time_slot_id), row)

    result: list[dict[str, Any]] = []
    for offset in range((last_day - first_day).days + 1):
        current = first_day + timedelta(days=offset)
        slot_statuses: list[dict[str, Any]] = []
        for slot in slots:
            row = by_day_slot.get((current, slot.id))
            if row is None:
                continue
            slot_statuses.append({
                "checkin_id": row.id,
                "time_slot_id": slot.id,
                "status": int(row.status),
            })
        if slot_statuses:
            result.append({
                "date": current.isoformat(),
                "checkin_mode": "slotted",
                "checked_slots": len(slot_statuses),
                "total_slots": len(slots),
                "time_slots": slot_statuses,
            })
    return result


def get_month_status(
    db: Session,
    user_id: int,
    *,
    plan_id: int,
    year: int,
    month: int,
) -> list[dict[str, Any]]:
    """Day-status entries for one month; days without check-ins are omitted."""
    first_day, last_day = month_bounds(year, month)
    plan = _viewable_plan(db, user_id, plan_id)
    checkins = _month_checkins(db, plan.id, first_day, last_day)
    slots = _active_slots(db, plan.id)

    if plan.checkin_mode == CHECKIN_MODE_SLOTTED:
        return aggregate_slotted_mode(checkins, slots, first_day, last_day)
    return aggregate_default_mode(checkins, len(slots))


def get_day_detail(
    db: Session,
    user_id: int,
    *,
    plan_id: int,
    check_date: date,
) -> list[dict[str, Any]]:
    plan = _viewable_plan(db, user_id, plan_id)
    rows = (
        db.query(Checkin)
        .options(selectinload(Checkin.time_slot))
        .filter(
            Checkin.plan_id == plan.id,
            Checkin.check_date == check_date,
            Checkin.is_deleted.is_(False),
        )
        .order_by(Checkin.id.asc())
        .all()
    )
    return [checkin_to_dict(row) for row in rows]
