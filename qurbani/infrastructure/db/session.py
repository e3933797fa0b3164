# qurbani/infrastructure/db/session.py
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Tuple

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from qurbani.config.settings import Settings
from qurbani.domain.errors import ConstraintViolation, TransientStoreError

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine_and_sessionmaker(settings: Settings) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Build the engine and session factory once per process (called from the app lifespan)."""
    engine_kwargs = {"echo": settings.DB_ECHO, "future": True}
    if make_url(settings.DATABASE_URL).get_backend_name() != "sqlite":
        engine_kwargs.update(
            pool_pre_ping=True,      # validates connections
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


async def init_models(engine: AsyncEngine) -> None:
    # registers every table on Base.metadata
    import qurbani.infrastructure.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping(session_factory: async_sessionmaker) -> None:
    async with session_factory() as session:
        await session.execute(text("SELECT 1"))


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """
    Run a unit of work in one transaction.

    Commits when the block exits normally and rolls back on any exception,
    including cancellation. Driver errors are re-raised as domain errors so
    callers never see SQLAlchemy exceptions.
    """
    async with session_factory() as session:
        try:
            async with session.begin():
                yield session
        except IntegrityError as e:
            logger.warning("Transaction rolled back on constraint violation: %s", e.orig)
            raise ConstraintViolation(f"Constraint violation: {e.orig}") from e
        except (OperationalError, InterfaceError) as e:
            logger.warning("Transaction rolled back on store error: %s", e.orig)
            raise TransientStoreError("Database temporarily unavailable") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                logger.warning("Transaction rolled back, connection invalidated")
                raise TransientStoreError("Database connection lost") from e
            raise


def get_session_factory(request: Request) -> async_sessionmaker:
    """FastAPI dependency: the session factory built in the app lifespan."""
    return request.app.state.session_factory
