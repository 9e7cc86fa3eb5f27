import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from db.models import Checkin, CheckinPlan, SoftDeleteLog, User

logger = logging.getLogger(__name__)


def deactivate_account(db: Session, user: User, *, reason: str = "account_deactivated") -> dict[str, int]:
    """Deactivate a user and soft-delete everything they recorded.

    This is the only path that soft-deletes check-ins. Rows are kept and each
    one gets a soft-delete log entry.
    """
    now = datetime.now(timezone.utc)

    plans = (
        db.query(CheckinPlan)
        .filter(CheckinPlan.user_id == user.id, CheckinPlan.is_deleted.is_(False))
        .all()
    )
    checkins = (
        db.query(Checkin)
        .filter(Checkin.user_id == user.id, Checkin.is_deleted.is_(False))
        .all()
    )

    for plan in plans:
        plan.is_deleted = True
        plan.deleted_at = now
        db.add(SoftDeleteLog(
            table_name=CheckinPlan.__tablename__,
            record_id=plan.id,
            deleter_user_id=user.id,
            reason=reason,
            deleted_at=now,
        ))
    for checkin in checkins:
        checkin.is_deleted = True
        checkin.deleted_at = now
        db.add(SoftDeleteLog(
            table_name=Checkin.__tablename__,
            record_id=checkin.id,
            deleter_user_id=user.id,
            reason=reason,
            deleted_at=now,
        ))

    user.is_deleted = True
    user.deleted_at = now
    user.token_version = int(user.token_version or 0) + 1
    db.flush()

    logger.info(
        "Account %s deactivated: %d plans and %d check-ins soft-deleted",
        user.id,
        len(plans),
        len(checkins),
    )
    return {"plans": len(plans), "checkins": len(checkins)}
