from __future__ import annotations

import json
import sys
from datetime import date, time
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import CHECKIN_MODE_DEFAULT, Checkin, CheckinPlanTimeSlot, CheckinStatus, User  # noqa: E402
from services.calendar_service import get_day_detail, get_month_status  # noqa: E402
from services.errors import PlanNotFoundError  # noqa: E402
from services.plan_service import SlotDraft, create_plan  # noqa: E402


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _new_user(db, username: str = "calendar_tester") -> User:
    user = User(
        username=username,
        username_normalized=username.lower(),
        password_hash="hash",
        display_name="Calendar Tester",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _add_checkin(db, plan, day: date, status: CheckinStatus, slot=None, *, deleted: bool = False) -> Checkin:
    row = Checkin(
        plan_id=plan.id,
        user_id=plan.user_id,
        check_date=day,
        time_slot_id=slot.id if slot is not None else None,
        slot_key=slot.id if slot is not None else 0,
        images=json.dumps(["/uploads/x.jpg"]),
        note=f"{day.isoformat()} note",
        status=int(status),
        is_deleted=deleted,
    )
    db.add(row)
    db.commit()
    return row


def _two_slot_plan(db, user):
    plan = create_plan(
        db,
        user.id,
        title="Meds",
        start_date=date(2024, 1, 1),
        time_slots=[
            SlotDraft(slot_name="A", start_time=time(8, 0), end_time=time(9, 0), order_num=1),
            SlotDraft(slot_name="B", start_time=time(20, 0), end_time=time(21, 0), order_num=2),
        ],
    )
    db.commit()
    slot_a, slot_b = plan.active_time_slots
    return plan, slot_a, slot_b


def test_default_mode_without_slots_reports_status_per_day():
    db = _new_db()
    user = _new_user(db)
    plan = create_plan(db, user.id, title="Journal", start_date=date(2024, 1, 1))
    db.commit()
    _add_checkin(db, plan, date(2024, 1, 5), CheckinStatus.SUCCESS)
    _add_checkin(db, plan, date(2024, 1, 6), CheckinStatus.RETRO)

    result = get_month_status(db, user.id, plan_id=plan.id, year=2024, month=1)

    assert result == [
        {"date": "2024-01-05", "checkin_mode": "default", "status": 1},
        {"date": "2024-01-06", "checkin_mode": "default", "status": 2},
    ]


def test_month_query_excludes_neighbouring_months_and_deleted_rows():
    db = _new_db()
    user = _new_user(db)
    plan = create_plan(db, user.id, title="Journal", start_date=date(2023, 12, 1))
    db.commit()
    _add_checkin(db, plan, date(2023, 12, 31), CheckinStatus.SUCCESS)
    _add_checkin(db, plan, date(2024, 1, 1), CheckinStatus.SUCCESS)
    _add_checkin(db, plan, date(2024, 1, 31), CheckinStatus.RETRO)
    _add_checkin(db, plan, date(2024, 2, 1), CheckinStatus.SUCCESS)
    _add_checkin(db, plan, date(2024, 1, 15), CheckinStatus.SUCCESS, deleted=True)

    result = get_month_status(db, user.id, plan_id=plan.id, year=2024, month=1)

    assert [entry["date"] for entry in result] == ["2024-01-01", "2024-01-31"]


def test_default_mode_with_slots_added_later_requires_every_active_slot():
    db = _new_db()
    user = _new_user(db)
    plan = create_plan(db, user.id, title="Legacy", start_date=date(2024, 1, 1))
    db.commit()
    # Slots attached after whole-day history exists; the stored mode is left as it was.
    slot_a = CheckinPlanTimeSlot(plan_id=plan.id, slot_name="A", start_time=time(8), end_time=time(9), order_num=1)
    slot_b = CheckinPlanTimeSlot(plan_id=plan.id, slot_name="B", start_time=time(20), end_time=time(21), order_num=2)
    db.add_all([slot_a, slot_b])
    db.commit()
    assert plan.checkin_mode == CHECKIN_MODE_DEFAULT

    _add_checkin(db, plan, date(2024, 1, 2), CheckinStatus.SUCCESS)  # whole-day row only
    _add_checkin(db, plan, date(2024, 1, 3), CheckinStatus.SUCCESS, slot_a)
    _add_checkin(db, plan, date(2024, 1, 4), CheckinStatus.SUCCESS, slot_a)
    _add_checkin(db, plan, date(2024, 1, 4), CheckinStatus.RETRO, slot_b)
    _add_checkin(db, plan, date(2024, 1, 5), CheckinStatus.SUCCESS, slot_a)
    _add_checkin(db, plan, date(2024, 1, 5), CheckinStatus.SUCCESS, slot_b)

    result = get_month_status(db, user.id, plan_id=plan.id, year=2024, month=1)

    assert result == [
        {"date": "2024-01-04", "checkin_mode": "default", "status": 2},
        {"date": "2024-01-05", "checkin_mode": "default", "status": 1},
    ]


def test_slotted_mode_reports_progress_count_and_slot_statuses():
    db = _new_db()
    user = _new_user(db)
    plan, slot_a, slot_b = _two_slot_plan(db, user)
    day = date(2024, 1, 10)

    row_a = _add_checkin(db, plan, day, CheckinStatus.SUCCESS, slot_a)
    result = get_month_status(db, user.id, plan_id=plan.id, year=2024, month=1)
    assert result == [
        {
            "date": "2024-01-10",
            "checkin_mode": "slotted",
            "checked_slots": 1,
            "total_slots": 2,
            "time_slots": [{"checkin_id": row_a.id, "time_slot_id": slot_a.id, "status": 1}],
        }
    ]

    row_b = _add_checkin(db, plan, day, CheckinStatus.RETRO, slot_b)
    result = get_month_status(db, user.id, plan_id=plan.id, year=2024, month=1)
    assert len(result) == 1
    entry = result[0]
    assert entry["checked_slots"] == 2
    assert entry["time_slots"] == [
        {"checkin_id": row_a.id, "time_slot_id": slot_a.id, "status": 1},
        {"checkin_id": row_b.id, "time_slot_id": slot_b.id, "status": 2},
    ]
    assert "status" not in entry


def test_slotted_mode_ignores_rows_for_inactive_slots():
    db = _new_db()
    user = _new_user(db)
    plan, slot_a, slot_b = _two_slot_plan(db, user)
    _add_checkin(db, plan, date(2024, 1, 3), CheckinStatus.SUCCESS, slot_b)
    slot_b.is_active = False
    db.commit()

    result = get_month_status(db, user.id, plan_id=plan.id, year=2024, month=1)

    assert result == []


def test_slotted_mode_orders_days_ascending():
    db = _new_db()
    user = _new_user(db)
    plan, slot_a, _slot_b = _two_slot_plan(db, user)
    _add_checkin(db, plan, date(2024, 2, 29), CheckinStatus.RETRO, slot_a)
    _add_checkin(db, plan, date(2024, 2, 1), CheckinStatus.SUCCESS, slot_a)

    result = get_month_status(db, user.id, plan_id=plan.id, year=2024, month=2)

    assert [entry["date"] for entry in result] == ["2024-02-01", "2024-02-29"]


def test_slotted_mode_handles_the_last_representable_month():
    db = _new_db()
    user = _new_user(db)
    plan, slot_a, _slot_b = _two_slot_plan(db, user)
    _add_checkin(db, plan, date(9999, 12, 31), CheckinStatus.RETRO, slot_a)

    result = get_month_status(db, user.id, plan_id=plan.id, year=9999, month=12)

    assert [entry["date"] for entry in result] == ["9999-12-31"]
    assert result[0]["checked_slots"] == 1


def test_month_status_hides_foreign_plans_and_rejects_bad_month():
    db = _new_db()
    owner = _new_user(db, "owner")
    stranger = _new_user(db, "stranger")
    plan = create_plan(db, owner.id, title="Private", start_date=date(2024, 1, 1))
    db.commit()

    with pytest.raises(PlanNotFoundError):
        get_month_status(db, stranger.id, plan_id=plan.id, year=2024, month=1)
    with pytest.raises(ValueError):
        get_month_status(db, owner.id, plan_id=plan.id, year=2024, month=13)


def test_day_detail_lists_records_with_slot_names():
    db = _new_db()
    user = _new_user(db)
    plan, slot_a, slot_b = _two_slot_plan(db, user)
    day = date(2024, 1, 20)
    _add_checkin(db, plan, day, CheckinStatus.SUCCESS, slot_a)
    _add_checkin(db, plan, day, CheckinStatus.RETRO, slot_b)

    detail = get_day_detail(db, user.id, plan_id=plan.id, check_date=day)

    assert [(d["time_slot_id"], d["slot_name"], d["status"]) for d in detail] == [
        (slot_a.id, "A", 1),
        (slot_b.id, "B", 2),
    ]
    assert detail[0]["image_urls"] == ["/uploads/x.jpg"]
    assert detail[0]["note"] == "2024-01-20 note"
    assert detail[0]["date"] == "2024-01-20"


def test_day_detail_is_empty_list_when_nothing_recorded():
    db = _new_db()
    user = _new_user(db)
    plan = create_plan(db, user.id, title="Journal", start_date=date(2024, 1, 1))
    db.commit()

    assert get_day_detail(db, user.id, plan_id=plan.id, check_date=date(2024, 1, 2)) == []
