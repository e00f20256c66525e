from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings

# Support both PostgreSQL and SQLite via centralized settings
DATABASE_URL = settings.database_url


def build_engine(url: str):
    """
    Creates an engine with a storage-level timeout so no request blocks
    indefinitely on a locked row or table.
    """
    if url.startswith("postgresql"):
        timeout_ms = settings.db_timeout_seconds * 1000
        return create_engine(
            url,
            pool_pre_ping=True,
            connect_args={"options": f"-c statement_timeout={timeout_ms}"},
        )
    # SQLite configuration for local development/testing
    return create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": settings.db_timeout_seconds},
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    """
    Registers all domain models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    # Import all models to ensure they are registered with Base.metadata before create_all
    from app.models import (
        user, leave_category, leave_allotment, leave_request,
        penalty, attendance, setting, notification, audit_log, counter
    )
    # Perform schema emission
    Base.metadata.create_all(bind=engine)
