from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def make_engine(database_url: str) -> Engine:
    """Build an engine for the configured database.

    In-memory sqlite URLs share a single connection so every session sees the same data.
    """
    engine_kwargs = {
        "pool_pre_ping": True,
    }
    parsed = make_url(database_url)
    if parsed.drivername.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_recycle"] = 1800
    return create_engine(database_url, **engine_kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
