from collections.abc import AsyncGenerator, AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.config import settings
from arena.core.errors import StoreUnavailableError

engine = create_async_engine(settings.db_url)

# Errors that mean the store is unreachable rather than that a statement was wrong
TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)
STORE_UNAVAILABLE_MESSAGE = "The battle store is temporarily unavailable, please retry"


def get_session() -> AsyncSession:
    """Open a session outside a request, e.g. for background jobs."""
    return AsyncSession(engine, autocommit=False, autoflush=False, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession]:
    async with get_session() as session:
        yield session


@contextmanager
def store_errors() -> Iterator[None]:
    """Re-raise store outages in the block as StoreUnavailableError."""
    try:
        yield
    except TRANSIENT_DB_ERRORS as e:
        raise StoreUnavailableError(STORE_UNAVAILABLE_MESSAGE) from e


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[None]:
    """Commit the block's writes or roll all of them back.

    Store outages are re-raised as StoreUnavailableError so callers can offer a retry.
    ORM objects loaded before a rollback are expired and must be re-read.
    """
    try:
        yield
        await db.commit()
    except TRANSIENT_DB_ERRORS as e:
        await db.rollback()
        raise StoreUnavailableError(STORE_UNAVAILABLE_MESSAGE) from e
    except BaseException:
        await db.rollback()
        raise
