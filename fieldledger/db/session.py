import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from fieldledger.core.config import settings
from fieldledger.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

engine = create_async_engine(settings.DATABASE_URL, future=True, echo=settings.DEBUG)

AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    future=True
)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run the enclosed writes as one unit: commit on success, roll back on any failure.

    Datastore failures surface as PersistenceError; domain errors raised inside
    the block propagate unchanged after the rollback.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Transaction rolled back on datastore failure: {exc}")
        raise PersistenceError(f"Datastore failure: {exc.__class__.__name__}") from exc
    except BaseException:
        await db.rollback()
        raise
