from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from libs.common.config import get_settings

settings = get_settings()


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN on SQLite so SAVEPOINTs behave.

    The sqlite3 driver otherwise opens transactions lazily on its own, which
    breaks ``Session.begin_nested()``.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; pool tuning only applies to server databases."""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, future=True, **kwargs)
        enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        database_url,
        # echo=True for local dev to see SQL queries
        echo=(settings.ENVIRONMENT == "local"),
        future=True,
        pool_pre_ping=True,  # Test connections before using
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        **kwargs,
    )


engine = build_engine(settings.DATABASE_URL)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)
