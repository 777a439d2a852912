"""Database engine, session factory and the thread-pool bridge for async callers."""
import asyncio
import functools
from typing import Callable, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.core.config import settings

T = TypeVar("T")


def make_engine(url: str) -> Engine:
    """
    SQLite gets one connection per checkout (NullPool) because every call
    runs on a worker thread; server databases get a health-checked pool.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=NullPool)
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


def make_session_factory(bind: Engine) -> sessionmaker:
    # Snapshots are read after the session closes
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)


async def run_db(fn: Callable[..., T], *args, timeout: Optional[float] = None) -> T:
    """
    Run a blocking database function on the default thread pool.

    Every store and catalog call goes through here so the event loop
    never blocks on SQLAlchemy I/O. With a timeout, asyncio.TimeoutError
    propagates to the caller; the worker thread finishes on its own.
    """
    loop = asyncio.get_running_loop()
    call = loop.run_in_executor(None, functools.partial(fn, *args))
    if timeout:
        return await asyncio.wait_for(call, timeout)
    return await call
