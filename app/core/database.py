from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from app.core.config import settings

# Create SQLAlchemy engine
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using them
    pool_size=10,  # Connection pool size
    max_overflow=20  # Allow up to 20 connections beyond pool_size
)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency function to get database session.
    Used in FastAPI endpoints with Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database.

    The schema is managed by Alembic, so this only makes sure every model is
    imported and registered on Base.metadata.

    Note: Base.metadata.create_all() is not called here to avoid conflicts with Alembic.
    Use "alembic upgrade head" to create/update database schema.
    """
    import app.models  # noqa: F401  (registers all tables)
    # Base.metadata.create_all(bind=engine)  # Disabled - use Alembic instead
