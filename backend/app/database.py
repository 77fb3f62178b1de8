"""
MathMentor Scheduling Backend — Database Session Management
============================================================

What:  Async SQLAlchemy engine, session factory, FastAPI dependency and the
       retrying transaction runner used by every mutating operation.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine with connection pooling, provides a session
       dependency that auto-commits on success and auto-rolls-back on error,
       and a TransactionRunner that re-runs a whole unit of work when the
       database reports a transient failure.
Who:   Used by route handlers via FastAPI's dependency injection system.
When:  Engine is created at module import; sessions are created per-request
       (reads) or per-attempt (writes).

Connection Pooling Strategy:
    pool_size=20:     Persistent connections for normal load
    max_overflow=10:  Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:    Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour

    SQLite (tests) uses SQLAlchemy's default pool and gets none of these
    arguments.

Transaction Retry Strategy:
    Seat reservations and state transitions are conditional UPDATEs, so a
    lost race is reported as a domain error, not retried. What IS retried is
    an OperationalError from the driver: deadlock detected, lock timeout,
    serialization failure, SQLite "database is locked". The unit of work is
    replayed from scratch in a new session and a new transaction.
"""

import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import DatabaseError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Engine Configuration ──────────────────────────────────────────────────
def _engine_options(database_url: str) -> dict:
    """Pool arguments for server databases; SQLite gets the driver defaults."""
    options: dict = {"echo": settings.log_level == "DEBUG"}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: ORM rows stay readable after commit so the service
# layer can build response schemas outside the transaction
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Every model registers with this metadata, which Alembic autogenerate and
    the test suite's `create_all` both read.
    """
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back the transaction
        5. Always: closes the session (returns connection to pool)

    Used by read-only routes. Mutating routes go through TransactionRunner
    so they can be retried.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Transaction Runner ────────────────────────────────────────────────────
class TransactionRunner:
    """
    Runs a unit of work in its own transaction, retrying transient failures.

    What:   `await runner.run(work)` opens a session, awaits `work(session)`,
            commits, and returns whatever `work` returned.
    Why:    A booking is several statements (seat reservation, conflict read,
            insert) that must commit or roll back together. When the database
            aborts the transaction (deadlock, lock timeout) the only safe
            recovery is to replay all of it.
    How:    tenacity.AsyncRetrying with exponential backoff and jitter. Domain
            errors (MathMentorError) are never retried; they roll back and
            propagate on the first attempt.

    Example:
        async def work(db):
            return await booking_service.cancel(db, booking_id, actor_id)
        booking = await runner.run(work)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        attempts: Optional[int] = None,
        initial_wait: Optional[float] = None,
        max_wait: Optional[float] = None,
    ):
        self.session_factory = session_factory or async_session_factory
        self.attempts = attempts or settings.tx_retry_attempts
        self.initial_wait = settings.tx_retry_initial_wait if initial_wait is None else initial_wait
        self.max_wait = settings.tx_retry_max_wait if max_wait is None else max_wait

    async def run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Executes `work` inside a fresh transaction per attempt.

        Raises:
            MathMentorError subclasses: raised by `work`, propagated unchanged
            DatabaseError: the database kept failing after every attempt
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(OperationalError),
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential_jitter(initial=self.initial_wait, max=self.max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=False,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._run_once(work)
        except RetryError as e:
            last = e.last_attempt.exception()
            logger.error(
                f"Transaction failed after {self.attempts} attempts: {last}",
                exc_info=last,
            )
            raise DatabaseError(
                context={"attempts": self.attempts, "reason": type(last).__name__}
            ) from last
        # Unreachable: AsyncRetrying either returns from the loop body or raises
        raise DatabaseError()

    async def _run_once(self, work: Callable[[AsyncSession], Awaitable[Any]]) -> Any:
        async with self.session_factory() as session:
            try:
                result = await work(session)
                await session.commit()
                return result
            except Exception:
                await session.rollback()
                raise


_default_runner: Optional[TransactionRunner] = None


def get_transaction_runner() -> TransactionRunner:
    """FastAPI dependency returning the process-wide TransactionRunner."""
    global _default_runner
    if _default_runner is None:
        _default_runner = TransactionRunner()
    return _default_runner


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
