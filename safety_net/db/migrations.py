from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
import logging


def _existing_indexes(insp, table: str) -> set:
    names = {idx.get("name") for idx in insp.get_indexes(table)}
    try:
        names |= {uc.get("name") for uc in insp.get_unique_constraints(table)}
    except NotImplementedError:
        pass
    return names


def _create_index(engine: Engine, name: str, table: str, columns: str, unique: bool = False) -> None:
    kind = "UNIQUE INDEX" if unique else "INDEX"
    try:
        with engine.begin() as conn:
            conn.execute(text(f"CREATE {kind} {name} ON {table} ({columns})"))
        logging.info(f"Created missing index {name} on {table}({columns})")
    except Exception:
        logging.exception(f"Failed to create index {name} on {table}({columns}). Continuing.")


def ensure_medication_logs_schema(engine: Engine) -> None:
    """Ensure DB schema matches the ORM for medication_logs table.

    - Adds taken_at column if missing
    - Ensures a unique index on (schedule_id, date) so one record per dose day is ground truth

    Idempotent and safe to run on startup.
    """
    try:
        insp = inspect(engine)
        if "medication_logs" not in set(insp.get_table_names()):
            return

        columns = {col["name"] for col in insp.get_columns("medication_logs")}
        if "taken_at" not in columns:
            stmt = "ALTER TABLE medication_logs ADD COLUMN taken_at TIMESTAMP NULL"
            logging.info(f"Applying schema patch: {stmt}")
            with engine.begin() as conn:
                conn.execute(text(stmt))

        if "uq_medication_logs_schedule_date" not in _existing_indexes(insp, "medication_logs"):
            _create_index(engine, "uq_medication_logs_schedule_date", "medication_logs", "schedule_id, date", unique=True)
    except Exception:
        logging.exception("Error ensuring medication_logs schema; continuing without blocking startup.")


def ensure_medication_schedules_schema(engine: Engine) -> None:
    """Ensure the time-of-day index used by the window query exists."""
    try:
        insp = inspect(engine)
        if "medication_schedules" not in set(insp.get_table_names()):
            return
        if "ix_medication_schedules_time" not in _existing_indexes(insp, "medication_schedules"):
            _create_index(engine, "ix_medication_schedules_time", "medication_schedules", "time")
    except Exception:
        logging.exception("Error ensuring medication_schedules schema; continuing.")


def ensure_alert_claims_schema(engine: Engine) -> None:
    """Ensure alert_claims carries the send outcome columns and its dedup key."""
    try:
        insp = inspect(engine)
        if "alert_claims" not in set(insp.get_table_names()):
            return

        columns = {col["name"] for col in insp.get_columns("alert_claims")}
        alters = []
        if "message_id" not in columns:
            alters.append("ALTER TABLE alert_claims ADD COLUMN message_id VARCHAR(255) NULL")
        if "sent_at" not in columns:
            alters.append("ALTER TABLE alert_claims ADD COLUMN sent_at TIMESTAMP NULL")
        for stmt in alters:
            logging.info(f"Applying schema patch: {stmt}")
            with engine.begin() as conn:
                conn.execute(text(stmt))

        if "uq_alert_claims_schedule_date_type" not in _existing_indexes(insp, "alert_claims"):
            _create_index(engine, "uq_alert_claims_schedule_date_type", "alert_claims", "schedule_id, date, alert_type", unique=True)
    except Exception:
        logging.exception("Error ensuring alert_claims schema; continuing without blocking startup.")


def ensure_schema(engine: Engine) -> None:
    from safety_net.db.base import Base
    import safety_net.models  # noqa: F401  registers tables on Base.metadata

    logging.info("Creating database tables (if not exist)...")
    Base.metadata.create_all(bind=engine)
    ensure_medication_schedules_schema(engine)
    ensure_medication_logs_schema(engine)
    ensure_alert_claims_schema(engine)
