import logging
import os
import time

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DATABASE_URL, SERVICE_DATABASE_URL

logger = logging.getLogger(__name__)

# Get environment-specific pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))


def build_engine(url: str, label: str) -> Engine:
    """Create an engine with pooling tuned for the target dialect"""
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,  # Test connections before using
            pool_recycle=POOL_RECYCLE,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            echo=False,
        )
    logger.info(f"✅ Database engine created ({label})")

    if ENABLE_QUERY_LOGGING:

        @event.listens_for(engine, "before_cursor_execute")
        def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
            conn.info.setdefault("query_start_time", []).append(time.time())

        @event.listens_for(engine, "after_cursor_execute")
        def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
            total = time.time() - conn.info["query_start_time"].pop(-1)
            if total > SLOW_QUERY_THRESHOLD:
                logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")

    return engine


try:
    engine = build_engine(DATABASE_URL, "application role")
    # Same URL means a single-credential deployment (local development, tests)
    service_engine = (
        engine
        if SERVICE_DATABASE_URL == DATABASE_URL
        else build_engine(SERVICE_DATABASE_URL, "service role")
    )
    logger.info(
        f"📊 Connection pool: size={POOL_SIZE}, max_overflow={MAX_OVERFLOW}, timeout={POOL_TIMEOUT}s"
    )
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
ServiceSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=service_engine)
Base = declarative_base()


def set_rls_context(db: Session, user_id: str) -> None:
    """
    Set the row-level security context for a caller-scoped session.

    Postgres policies read `app.current_user_id` to filter rows. Other dialects
    have no RLS, so the call is a no-op there and repositories filter explicitly.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    try:
        db.execute(
            text("SELECT set_config('app.current_user_id', :user_id, false)"),
            {"user_id": str(user_id)},
        )
        logger.debug(f"RLS context set for user_id={user_id}")
    except Exception as e:
        logger.error(f"Failed to set RLS context for user_id={user_id}: {e}")
        raise


def clear_rls_context(db: Session) -> None:
    """
    Drop the caller id from the connection before it returns to the pool.

    The setting is session-scoped and survives a commit, so it is cleared in its own
    committed transaction. A connection that cannot be cleared is invalidated instead.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    try:
        db.rollback()
        db.execute(text("SELECT set_config('app.current_user_id', '', false)"))
        db.commit()
    except SQLAlchemyError as e:
        logger.warning(f"Failed to clear RLS context, discarding connection: {e}")
        db.invalidate()


def get_db():
    """Caller-scoped session (application role)"""
    db = SessionLocal()
    try:
        yield db
    finally:
        clear_rls_context(db)
        db.close()


def get_service_db():
    """Elevated session for privileged cross-tenant reads and writes"""
    db = ServiceSessionLocal()
    try:
        yield db
    finally:
        db.close()
