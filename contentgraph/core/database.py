import uuid

from sqlalchemy import JSON, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, sessionmaker
from contentgraph.core.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}  # only for SQLite
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,  # Detect stale connections before using them
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
    }


def enable_sqlite_foreign_keys(engine) -> None:
    """SQLite ignores ON DELETE CASCADE unless the pragma is set per connection."""
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_engine(
    settings.DATABASE_URL,
    echo=bool(settings.SQL_ECHO),
    **_engine_options(settings.DATABASE_URL)
)
if settings.DATABASE_URL.startswith("sqlite"):
    enable_sqlite_foreign_keys(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def generate_id() -> str:
    return str(uuid.uuid4())


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")
