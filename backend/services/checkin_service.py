"""Admission rules for recording a check-in.

Two recording paths exist. The live path records today's check-in while the
slot's window is open (any time of day for slot-less plans). The retro path
backfills a past day, or today once the slot's window has closed; slot-less
plans can only backfill past days. The two paths never accept the same
(date, slot, instant) combination: a slot window is closed on both ends for
live and live is rejected from the first instant after its end.

Checks run in a fixed order and the first failure wins:

1. plan exists, is owned by the caller, not deleted and active
2. target date is not before the plan's start date
3. slot reference resolves against the plan's active slots
4. live: wall clock inside the slot window / retro: not future, window closed
5. no live row already exists for (plan, date, slot)
6. between CHECKIN_MIN_IMAGES and CHECKIN_MAX_IMAGES image references

"Now" is always taken at the deployment's business offset, for both the date
and the time-of-day comparisons.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Sequence, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from db.models import NO_SLOT_KEY, Checkin, CheckinPlan, CheckinPlanTimeSlot, CheckinStatus
from services.errors import (
    DuplicateCheckinError,
    FutureDateError,
    InvalidImageCountError,
    InvalidSlotError,
    OutOfWindowError,
    PlanNotStartedError,
    WrongPathError,
)
from services.plan_service import get_owned_plan
from utils.datetime_utils import business_now, to_business_time, wall_clock
from utils.image_utils import normalize_image_refs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoSlot:
    """The check-in belongs to the whole day."""

    @property
    def slot_id(self) -> None:
        return None

    @property
    def key(self) -> int:
        return NO_SLOT_KEY


@dataclass(frozen=True)
class Slot:
    slot_id: int

    @property
    def key(self) -> int:
        return self.slot_id


SlotRef = Union[NoSlot, Slot]


def slot_ref(slot_id: int | None) -> SlotRef:
    return NoSlot() if slot_id is None else Slot(int(slot_id))


def _current_moment(now: datetime | None) -> datetime:
    return to_business_time(now) if now is not None else business_now()


def _slot_label(slot: CheckinPlanTimeSlot) -> str:
    return slot.slot_name or f"#{slot.id}"


def _resolve_slot(plan: CheckinPlan, ref: SlotRef) -> CheckinPlanTimeSlot | None:
    active = plan.active_time_slots
    if isinstance(ref, Slot):
        for slot in active:
            if slot.id == ref.slot_id:
                return slot
        raise InvalidSlotError("Invalid time slot")
    if active:
        raise InvalidSlotError("Time slot is required for this plan")
    return None


def find_existing_checkin(db: Session, plan_id: int, check_date: date, ref: SlotRef) -> Checkin | None:
    return (
        db.query(Checkin)
        .filter(
            Checkin.plan_id == plan_id,
            Checkin.check_date == check_date,
            Checkin.slot_key == ref.key,
            Checkin.is_deleted.is_(False),
        )
        .first()
    )


def _validated_images(image_urls: Sequence[str] | None) -> list[str]:
    images = normalize_image_refs(image_urls)
    low, high = settings.CHECKIN_MIN_IMAGES, settings.CHECKIN_MAX_IMAGES
    if not low <= len(images) <= high:
        raise InvalidImageCountError(f"Check-in must include between {low} and {high} images")
    return images


def _insert_checkin(
    db: Session,
    *,
    plan: CheckinPlan,
    user_id: int,
    check_date: date,
    ref: SlotRef,
    images: list[str],
    note: str | None,
    status: CheckinStatus,
) -> Checkin:
    now = datetime.now(timezone.utc)
    checkin = Checkin(
        plan_id=plan.id,
        user_id=user_id,
        check_date=check_date,
        time_slot_id=ref.slot_id,
        slot_key=ref.key,
        images=json.dumps(images, ensure_ascii=False),
        note=note,
        status=int(status),
        is_deleted=False,
        created_at=now,
        updated_at=now,
    )
    db.add(checkin)
    try:
        db.flush()
    except IntegrityError as exc:
        # A concurrent request won the race past the existence check.
        db.rollback()
        logger.warning(
            "Unique constraint rejected check-in for plan %s on %s (slot_key=%s)",
            plan.id,
            check_date.isoformat(),
            ref.key,
        )
        raise DuplicateCheckinError("Already checked in for that date") from exc

    logger.info(
        "Check-in %s recorded: plan=%s date=%s slot=%s status=%s",
        checkin.id,
        plan.id,
        check_date.isoformat(),
        ref.slot_id,
        CheckinStatus(status).name.lower(),
    )
    return checkin


def record_live(
    db: Session,
    user_id: int,
    *,
    plan_id: int,
    slot_id: int | None = None,
    image_urls: Sequence[str] | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Checkin:
    moment = _current_moment(now)
    today = moment.date()

    plan = get_owned_plan(db, user_id, plan_id, require_active=True)

    if plan.start_date > today:
        raise PlanNotStartedError("Plan has not started yet")

    ref = slot_ref(slot_id)
    slot = _resolve_slot(plan, ref)

    if slot is not None:
        current = wall_clock(moment)
        if current < slot.start_time:
            raise OutOfWindowError(
                f"Time slot {_slot_label(slot)} has not started yet ({slot.start_time.isoformat()})"
            )
        if current > slot.end_time:
            raise OutOfWindowError(
                f"Time slot {_slot_label(slot)} has ended ({slot.end_time.isoformat()}), please use retro check-in"
            )

    if find_existing_checkin(db, plan.id, today, ref) is not None:
        suffix = " in this time slot" if slot is not None else ""
        raise DuplicateCheckinError(f"Already checked in for today{suffix}")

    images = _validated_images(image_urls)

    return _insert_checkin(
        db,
        plan=plan,
        user_id=user_id,
        check_date=today,
        ref=ref,
        images=images,
        note=note,
        status=CheckinStatus.SUCCESS,
    )


def record_retro(
    db: Session,
    user_id: int,
    *,
    plan_id: int,
    check_date: date,
    slot_id: int | None = None,
    image_urls: Sequence[str] | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Checkin:
    moment = _current_moment(now)
    today = moment.date()

    plan = get_owned_plan(db, user_id, plan_id, require_active=True)

    if plan.start_date > check_date:
        raise PlanNotStartedError()

    ref = slot_ref(slot_id)
    slot = _resolve_slot(plan, ref)

    if check_date > today:
        raise FutureDateError()
    if check_date == today:
        # A slot-less day never closes while it is still today.
        if slot is None:
            raise WrongPathError("Current time is within the check-in day, please use daily check-in")
        if wall_clock(moment) <= slot.end_time:
            raise WrongPathError(
                f"Current time is within time slot {_slot_label(slot)}, please use daily check-in"
            )

    if find_existing_checkin(db, plan.id, check_date, ref) is not None:
        suffix = " in this time slot" if slot is not None else ""
        raise DuplicateCheckinError(f"Already checked in for that date{suffix}")

    images = _validated_images(image_urls)

    return _insert_checkin(
        db,
        plan=plan,
        user_id=user_id,
        check_date=check_date,
        ref=ref,
        images=images,
        note=note,
        status=CheckinStatus.RETRO,
    )


def checkin_images(checkin: Checkin) -> list[str]:
    if not checkin.images:
        return []
    try:
        parsed = json.loads(checkin.images)
    except (TypeError, ValueError):
        logger.warning("Check-in %s has unreadable images payload", checkin.id)
        return []
    return [str(item) for item in parsed] if isinstance(parsed, list) else []


def checkin_to_dict(checkin: Checkin) -> dict[str, Any]:
    slot = checkin.time_slot
    return {
        "id": checkin.id,
        "plan_id": checkin.plan_id,
        "date": checkin.check_date.isoformat(),
        "status": int(checkin.status),
        "note": checkin.note,
        "image_urls": checkin_images(checkin),
        "time_slot_id": checkin.time_slot_id,
        "slot_name": slot.slot_name if slot is not None else None,
        "created_at": checkin.created_at.isoformat() if checkin.created_at else None,
    }
