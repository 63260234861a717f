from pathlib import Path

from sqlalchemy import event, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from circulerp.config import settings
import structlog

logger = structlog.get_logger()


class Base(DeclarativeBase):
    pass


def _get_db_url() -> str:
    """Ensure the directory for a file-backed SQLite database exists."""
    url = settings.DATABASE_URL
    if settings.is_sqlite:
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    return url


def _build_engine() -> AsyncEngine:
    if settings.is_sqlite:
        return create_async_engine(_get_db_url(), poolclass=NullPool, echo=settings.DEBUG)
    return create_async_engine(
        _get_db_url(),
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=30,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )


engine: AsyncEngine = _build_engine()


if settings.is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def seed_admin(session: AsyncSession) -> None:
    """Create the default admin account when the users table is empty."""
    from circulerp.models.user import User
    from circulerp.services.auth_service import hash_password

    existing = await session.execute(select(User.id).limit(1))
    if existing.scalar() is not None:
        return
    session.add(
        User(
            username=settings.DEFAULT_ADMIN_USERNAME,
            password_hash=hash_password(settings.DEFAULT_ADMIN_PASSWORD),
            display_name="Administrator",
            role="admin",
        )
    )
    await session.flush()
    logger.info("default_admin_seeded", username=settings.DEFAULT_ADMIN_USERNAME)


async def init_db():
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        await conn.run_sync(Base.metadata.create_all)
        logger.info("db_connected", url=engine.url.render_as_string(hide_password=True))

    async with AsyncSessionLocal() as session:
        await seed_admin(session)
        await session.commit()


async def close_db():
    await engine.dispose()
    logger.info("db_disconnected")
