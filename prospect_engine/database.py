"""Async SQLAlchemy engine & session — supports SQLite and PostgreSQL."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from prospect_engine.config import get_settings

settings = get_settings()

# SQLite gets a fresh connection per checkout; PostgreSQL uses pool_size
if settings.is_sqlite:
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
else:
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=10,
    )

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@event.listens_for(Base, "init", propagate=True)
def _apply_defaults(target, args, kwargs):
    """Apply Column defaults at Python level right after __init__."""
    from sqlalchemy import inspect as sa_inspect

    mapper = sa_inspect(type(target))
    for col_attr in mapper.column_attrs:
        key = col_attr.key
        if key in kwargs:
            continue
        if getattr(target, key, None) is not None:
            continue
        col = col_attr.columns[0]
        if col.default is None:
            continue
        arg = col.default.arg
        if callable(arg):
            try:
                setattr(target, key, arg())
            except TypeError:
                # SQLAlchemy wraps zero-arg callables to accept an execution context
                setattr(target, key, arg(None))
        else:
            setattr(target, key, arg)


async def get_db():
    async with async_session() as session:
        yield session


async def init_db():
    """Create any missing tables (prospects, ledger, policies, score changes)."""
    from prospect_engine import models  # noqa: F401
    from prospect_engine.models import scoring  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
