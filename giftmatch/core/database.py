"""Database connection and session management."""

from collections.abc import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from giftmatch.config import get_settings

settings = get_settings()

# Create database engine (connects lazily on first use)
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_pool_size,  # port calls run on worker threads
    echo=settings.debug,  # Log SQL queries in debug mode
)

# Create session factory
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions.

    Commits on success, rolls back on exception, always closes.
    """
    with SessionLocal() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def check_database() -> dict:
    """Connectivity and pgvector probe used by the health endpoint."""
    with engine.connect() as conn:
        extension = conn.execute(
            text("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
        ).fetchone()
        products = conn.execute(text("SELECT COUNT(*) FROM products")).scalar_one()
    return {
        "status": "connected",
        "pgvector_version": extension[0] if extension else None,
        "products": int(products),
    }
