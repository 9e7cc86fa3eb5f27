"""Business rejections raised by the plan, check-in and calendar services.

Each error carries a stable ``code`` and the HTTP ``status_code`` the API
layer renders it with. None of them are retried; the caller fixes the input
or accepts the rejection.
"""
from __future__ import annotations


class CheckinDomainError(Exception):
    code = "domain_error"
    status_code = 400
    default_message = "Request rejected"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.default_message

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "code": self.code}


# not-found / authorization
class PlanNotFoundError(CheckinDomainError):
    code = "plan_not_found"
    status_code = 404
    default_message = "Plan not found"


# validation
class InvalidWindowError(CheckinDomainError):
    code = "invalid_window"
    default_message = "Time slot start must be earlier than its end"


class OverlappingWindowsError(CheckinDomainError):
    code = "overlapping_windows"
    default_message = "Time slots overlap"


class InvalidSlotError(CheckinDomainError):
    code = "invalid_slot"
    default_message = "Invalid time slot"


class InvalidImageCountError(CheckinDomainError):
    code = "invalid_image_count"
    default_message = "Check-in must include between 1 and 3 images"


# state conflicts
class PlanNotStartedError(CheckinDomainError):
    code = "plan_not_started"
    default_message = "Plan was not active on that date"


class OutOfWindowError(CheckinDomainError):
    code = "out_of_window"
    default_message = "Current time is outside the time slot"


class WrongPathError(CheckinDomainError):
    code = "wrong_path"
    default_message = "Current time is within the check-in window, please use daily check-in"


class FutureDateError(CheckinDomainError):
    code = "future_date"
    default_message = "Retro check-in date cannot be in the future"


class DuplicateCheckinError(CheckinDomainError):
    code = "duplicate_checkin"
    status_code = 409
    default_message = "Already checked in"
