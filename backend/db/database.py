import logging

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args,
    echo=False,
)


def set_sqlite_pragma(dbapi_connection, connection_record):
    _ = connection_record
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Enable WAL mode for better concurrent read performance
if engine.dialect.name == "sqlite":
    event.listen(engine, "connect", set_sqlite_pragma)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_startup_migrations() -> None:
    """Apply lightweight schema fixes for existing SQLite databases."""
    if engine.dialect.name != "sqlite":
        return
    inspector = inspect(engine)

    def _table_columns(table_name: str) -> set[str]:
        try:
            return {col["name"] for col in inspector.get_columns(table_name)}
        except Exception:
            return set()

    plan_columns = _table_columns("checkin_plans")
    checkin_columns = _table_columns("checkins")
    user_columns = _table_columns("users")
    if not plan_columns and not checkin_columns and not user_columns:
        # Tables may not exist yet on first boot.
        return

    alter_statements: list[str] = []
    if user_columns and "is_deleted" not in user_columns:
        alter_statements.append("ALTER TABLE users ADD COLUMN is_deleted BOOLEAN DEFAULT 0")
    if plan_columns and "checkin_mode" not in plan_columns:
        alter_statements.append("ALTER TABLE checkin_plans ADD COLUMN checkin_mode TEXT DEFAULT 'default'")
    if checkin_columns and "slot_key" not in checkin_columns:
        alter_statements.append("ALTER TABLE checkins ADD COLUMN slot_key INTEGER NOT NULL DEFAULT 0")

    with engine.begin() as conn:
        for stmt in alter_statements:
            logger.info("Startup migration: %s", stmt)
            conn.execute(text(stmt))

        if plan_columns:
            conn.execute(text("UPDATE checkin_plans SET checkin_mode = COALESCE(checkin_mode, 'default')"))

        if checkin_columns:
            if "slot_key" not in checkin_columns:
                # Legacy rows only carried the nullable slot reference.
                conn.execute(text("UPDATE checkins SET slot_key = COALESCE(time_slot_id, 0)"))
            # Keep the earliest live row per key before enforcing uniqueness.
            conn.execute(text(
                """
                UPDATE checkins
                SET is_deleted = 1, deleted_at = CURRENT_TIMESTAMP
                WHERE is_deleted = 0
                  AND id NOT IN (
                    SELECT MIN(id)
                    FROM checkins
                    WHERE is_deleted = 0
                    GROUP BY plan_id, check_date, slot_key
                  )
                """
            ))
            conn.execute(text(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS ux_checkins_plan_date_slot
                ON checkins (plan_id, check_date, slot_key)
                WHERE is_deleted = 0
                """
            ))
            conn.execute(text(
                """
                CREATE INDEX IF NOT EXISTS idx_checkins_plan_date
                ON checkins (plan_id, check_date)
                """
            ))
