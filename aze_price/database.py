from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .core.config import settings
from .core.logging_config import create_logger

logger = create_logger(__name__)

# Create Base class for models
Base = declarative_base()


def create_db_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create the SQLAlchemy engine for the price store.
    In-memory SQLite shares a single connection so every session sees the same data.
    """
    url = database_url or settings.database_url
    echo = settings.database_echo if echo is None else echo

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    return create_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=300
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory bound to an engine."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """
    Initialize database tables.
    Creates all tables defined in models.
    """
    from . import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)


def drop_db(engine: Engine) -> None:
    """
    Drop all database tables.
    Use with caution - this will delete all data!
    """
    Base.metadata.drop_all(bind=engine)


def test_connection(engine: Engine) -> bool:
    """
    Test database connection.
    Returns True if connection is successful, False otherwise.
    """
    try:
        with engine.connect() as connection:
            result = connection.execute(text("SELECT 1"))
            return result.scalar() == 1
    except Exception as e:
        logger.error("Database connection failed", extra={"error": str(e)})
        return False
