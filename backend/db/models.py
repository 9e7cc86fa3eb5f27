from datetime import datetime
from enum import IntEnum

from sqlalchemy import (
    Column, Integer, Text, Boolean, ForeignKey, Index,
    Date, DateTime, Time, text,
)
from sqlalchemy.orm import relationship
from db.database import Base


CHECKIN_MODE_DEFAULT = "default"
CHECKIN_MODE_SLOTTED = "slotted"
NO_SLOT_KEY = 0


class CheckinStatus(IntEnum):
    # MISSED is never stored; it is the absence of a row.
    MISSED = 0
    SUCCESS = 1
    RETRO = 2


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, unique=True, nullable=False)
    username_normalized = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    display_name = Column(Text, nullable=False)
    token_version = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plans = relationship("CheckinPlan", back_populates="user")
    checkins = relationship("Checkin", back_populates="user")


class CheckinPlan(Base):
    __tablename__ = "checkin_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text)
    start_date = Column(Date, nullable=False)  # inclusive
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    checkin_mode = Column(Text, nullable=False, default=CHECKIN_MODE_DEFAULT)  # default | slotted
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="plans")
    time_slots = relationship(
        "CheckinPlanTimeSlot",
        back_populates="plan",
        order_by=lambda: [CheckinPlanTimeSlot.order_num, CheckinPlanTimeSlot.start_time],
    )
    checkins = relationship("Checkin", back_populates="plan")

    @property
    def active_time_slots(self) -> list["CheckinPlanTimeSlot"]:
        active = [slot for slot in self.time_slots if slot.is_active]
        return sorted(active, key=lambda slot: (slot.order_num or 0, slot.start_time))


class CheckinPlanTimeSlot(Base):
    __tablename__ = "checkin_plan_time_slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("checkin_plans.id"), nullable=False)
    slot_name = Column(Text)  # display only
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    order_num = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("CheckinPlan", back_populates="time_slots")


class Checkin(Base):
    __tablename__ = "checkins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("checkin_plans.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    check_date = Column(Date, nullable=False)
    time_slot_id = Column(Integer, ForeignKey("checkin_plan_time_slots.id"), nullable=True)
    slot_key = Column(Integer, nullable=False, default=NO_SLOT_KEY)  # time_slot_id or 0
    images = Column(Text)  # JSON array of image references
    note = Column(Text)
    status = Column(Integer, nullable=False)  # 1 success | 2 retro
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("CheckinPlan", back_populates="checkins")
    user = relationship("User", back_populates="checkins")
    time_slot = relationship("CheckinPlanTimeSlot")


class SoftDeleteLog(Base):
    __tablename__ = "soft_delete_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_name = Column(Text, nullable=False)
    record_id = Column(Integer, nullable=False)
    deleter_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reason = Column(Text)
    deleted_at = Column(DateTime, default=datetime.utcnow)


# Indexes
Index("idx_users_username_normalized", User.username_normalized, unique=True)
Index("idx_plans_user", CheckinPlan.user_id, CheckinPlan.is_deleted)
Index("idx_plans_start_date", CheckinPlan.start_date)
Index("idx_time_slots_plan", CheckinPlanTimeSlot.plan_id, CheckinPlanTimeSlot.is_active)
Index("idx_checkins_plan_date", Checkin.plan_id, Checkin.check_date)
Index("idx_checkins_user_date", Checkin.user_id, Checkin.check_date)
Index(
    "ux_checkins_plan_date_slot",
    Checkin.plan_id,
    Checkin.check_date,
    Checkin.slot_key,
    unique=True,
    sqlite_where=text("is_deleted = 0"),
    postgresql_where=text("is_deleted = false"),
)
Index("idx_soft_delete_table_record", SoftDeleteLog.table_name, SoftDeleteLog.record_id)
