from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.engine import Engine
import os
import time
import logging

# Set up query logger
query_logger = logging.getLogger("sqlalchemy.query_timing")
query_logger.setLevel(logging.DEBUG if os.getenv("DEBUG_QUERIES") else logging.WARNING)

# Slow query threshold in milliseconds
SLOW_QUERY_THRESHOLD_MS = int(os.getenv("SLOW_QUERY_THRESHOLD_MS", "100"))

# Database URL - SQLite for local development, PostgreSQL in production
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./learning_api.db")

# Hosted Postgres URLs use postgres:// but SQLAlchemy requires postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

is_sqlite = "sqlite" in DATABASE_URL

if is_sqlite:
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,      # Detect stale connections
        pool_recycle=1800,       # Recycle connections after 30 minutes
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
    )


# Query timing event listeners for slow query logging
@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Record query start time."""
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries."""
    start_times = conn.info.get("query_start_time", [])
    if start_times:
        total_time_ms = (time.perf_counter() - start_times.pop()) * 1000

        if total_time_ms > SLOW_QUERY_THRESHOLD_MS:
            truncated_statement = statement[:500] + "..." if len(statement) > 500 else statement
            query_logger.warning(f"SLOW QUERY ({total_time_ms:.2f}ms): {truncated_statement}")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def init_db():
    """Create tables that do not exist yet."""
    from learning_api.models import models  # noqa: F401 - registers tables on Base
    Base.metadata.create_all(bind=engine)

def get_db():
    """Dependency for FastAPI routes"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
