import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    # Sessions cross threads under the test client and the threadpool
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # Managed Postgres drops idle connections
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
logger.info(f"📊 Database dialect: {engine.dialect.name}")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Request-scoped session, closed once the response is sent"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
