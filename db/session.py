from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.engine.url import make_url
from config.settings import settings
from db.base import Base
import logging

logger = logging.getLogger(__name__)

engine_kwargs = {"pool_pre_ping": True, "pool_recycle": 300}

def make_engine(database_url: str):
    """Build a sync engine; SQLite needs cross-thread access for the API workers"""
    url = make_url(database_url)
    if url.drivername.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(database_url, **engine_kwargs)

engine = make_engine(settings.DATABASE_URL)

# Create sessionmaker
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()

def create_tables(bind=None):
    """Create all tables"""
    import models  # noqa: F401 ensure model registration
    Base.metadata.create_all(bind=bind or engine)
