"""Database initialization and ORM setup."""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm import DeclarativeBase
import logging

from kubeforge.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def build_session_factory(database_url: str):
    """Create an engine and a session factory bound to it."""
    engine = create_async_engine(
        database_url,
        echo=False,  # Disable SQL echo to prevent logging
        pool_pre_ping=True,
    )
    return engine, sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Create async engine
engine, AsyncSessionLocal = build_session_factory(settings.DATABASE_URL)


async def init_db(bind=None):
    """Initialize database tables."""
    bind = bind or engine
    logger.info(f"Initializing database: {bind.url.get_backend_name()}")

    try:
        # Import models to register with Base
        import kubeforge.models  # noqa: F401

        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise
