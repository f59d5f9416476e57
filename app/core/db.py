from typing import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from app.core.config import DATABASE_URL, DB_TYPE
import ssl

Base = declarative_base()


def build_engine(url: str, db_type: str = DB_TYPE):
    if db_type == "postgres":
        # SSL setup for Supabase
        ssl_ctx = ssl.create_default_context()
        ssl_ctx.check_hostname = False
        ssl_ctx.verify_mode = ssl.CERT_NONE

        # PgBouncer-safe: no prepared statements
        return create_async_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            connect_args={
                "statement_cache_size": 0,
                "prepared_statement_cache_size": 0,
                "server_settings": {"prepareThreshold": "0"},  # must be string!
                "ssl": ssl_ctx,
            },
        )

    engine = create_async_engine(url, echo=False, connect_args={"timeout": 30})

    @event.listens_for(engine.sync_engine, "connect")
    def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself (see below)
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Writers take the lock up front; a deferred BEGIN deadlocks two
    # sessions that both read and then try to write
    @event.listens_for(engine.sync_engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = build_engine(DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


import app.models


# Auto-create tables (optional for dev)
async def init_models(bind=None):
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
