"""
Database configuration:
- pool_pre_ping=True
- Bounded lock waits (sqlite busy timeout, postgres lock_timeout)
- SQLite transactions start with BEGIN IMMEDIATE so a unit of work is serialized
- Retry on OperationalError for the preflight test (max 2 times)
"""
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, Session
from fastapi import Request
import logging
from typing import Generator
import time

from paystock.config import Settings

logger = logging.getLogger(__name__)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_immediate_transactions(engine: Engine) -> None:
    """Take the sqlite write lock at BEGIN instead of at the first write."""

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(settings: Settings) -> Engine:
    url = settings.DATABASE_URL
    timeout = settings.DB_LOCK_TIMEOUT_SECONDS

    if _is_sqlite(url):
        engine = create_engine(
            url,
            pool_pre_ping=True,
            echo=False,
            connect_args={
                "timeout": timeout,          # busy timeout while waiting for the write lock
                "check_same_thread": False,
            },
        )
        _enable_immediate_transactions(engine)
        logger.info("SQLite database configured")
        return engine

    # Add SSL mode for Supabase if not present
    if "supabase" in url and "sslmode" not in url:
        url += "?sslmode=require"
        logger.info("Added sslmode=require to DATABASE_URL")

    timeout_ms = int(timeout * 1000)
    engine = create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=300,
        pool_timeout=timeout,
        echo=False,
        connect_args={
            "connect_timeout": 10,
            "options": f"-c lock_timeout={timeout_ms} -c statement_timeout={timeout_ms}",
        },
    )
    logger.info("Database connection configured")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )


def get_db(request: Request) -> Generator[Session, None, None]:
    """Request-scoped session from the application's session factory."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def test_connection(engine: Engine) -> tuple[bool, str]:
    """Test database connection with retry"""
    for attempt in range(3):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True, "Database connection successful"
        except OperationalError as e:
            if attempt == 2:
                return False, f"Database connection failed: {str(e)}"
            logger.warning(f"Database connection attempt {attempt + 1} failed, retrying...")
            time.sleep(1)
    return False, "Database connection test failed"
