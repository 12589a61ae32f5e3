"""Database session management."""

from collections.abc import Callable

from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

from app.config import get_settings

settings = get_settings()

SessionFactory = Callable[[], Session]


def build_engine(url: str) -> Engine:
    """Create an engine for PostgreSQL (psycopg v3) or SQLite."""
    # Convert postgresql:// to postgresql+psycopg:// for psycopg v3 driver
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)

    if url.startswith("sqlite"):
        # Worker threads open their own sessions against the same file
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        connect_args={"sslmode": "require"} if "sslmode" not in url else {},
    )


engine = build_engine(settings.DATABASE_URL or "sqlite:///./reminders.db")


def session_factory_for(bind: Engine) -> SessionFactory:
    """Return a callable that opens a new session on ``bind``."""

    def factory() -> Session:
        return Session(bind)

    return factory
