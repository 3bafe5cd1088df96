"""
Database connection and session.

Schema source of truth: app.models. On startup, Base.metadata.create_all(bind=engine)
creates all tables and columns from the current models.

The database is the only shared mutable state of the ride core. Exclusive
operations (offer selection, guest migration, every status transition) rely on
conditional UPDATEs executed here, never on in-process locks.
"""
from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from app.config import get_settings

settings = get_settings()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": 15}}
    kwargs = {
        "pool_pre_ping": True,
        "pool_timeout": settings.database_pool_timeout_seconds,
    }
    if database_url.startswith("postgresql") and settings.database_statement_timeout_ms > 0:
        kwargs["connect_args"] = {"options": f"-c statement_timeout={settings.database_statement_timeout_ms}"}
    return kwargs


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
