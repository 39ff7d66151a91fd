from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from talentgrid.core.config import settings


def _engine_options(url: str) -> dict:
    """PostgreSQL in production, SQLite for local runs and tests."""
    options = {"echo": settings.sql_echo}
    if url.startswith("sqlite"):
        # bulk rating generation hands sessions to worker threads
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_pre_ping"] = True
    return options


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """One session per request; services own commit and rollback."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    """Create the rating, calibration and audit tables at startup."""
    from talentgrid.models import (  # noqa: F401
        cycle, rating, calibration, rating_config, audit_log
    )
    Base.metadata.create_all(bind=engine)
