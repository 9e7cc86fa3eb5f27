from __future__ import annotations

from datetime import time
from typing import Iterable, Protocol

from services.errors import InvalidWindowError, OverlappingWindowsError


class TimeWindow(Protocol):
    slot_name: str | None
    start_time: time
    end_time: time
    is_active: bool


def _label(slot: TimeWindow) -> str:
    name = (getattr(slot, "slot_name", None) or "").strip()
    window = f"{slot.start_time.strftime('%H:%M:%S')}-{slot.end_time.strftime('%H:%M:%S')}"
    return f"{name} ({window})" if name else window


def validate_time_slots(slots: Iterable[TimeWindow]) -> None:
    """Reject malformed or overlapping daily windows for one plan.

    Every slot must have ``start_time < end_time``. Active slots are then
    sorted by start and compared as closed intervals: a slot may end exactly
    when the next begins, but not after.
    """
    candidates = list(slots or [])
    for slot in candidates:
        if slot.start_time >= slot.end_time:
            raise InvalidWindowError(f"Time slot {_label(slot)} must start before it ends")

    active = sorted(
        (slot for slot in candidates if getattr(slot, "is_active", True)),
        key=lambda slot: slot.start_time,
    )
    for current, following in zip(active, active[1:]):
        if current.end_time > following.start_time:
            raise OverlappingWindowsError(
                f"Time slots {_label(current)} and {_label(following)} overlap"
            )
