from sqlalchemy.orm import sessionmaker
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool
import asyncio
import logging

from cinestream.core.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            # One shared connection so every session sees the same in-memory DB
            kwargs["poolclass"] = StaticPool
        return kwargs
    # pool_size: base connections
    # max_overflow: additional connections allowed
    # pool_recycle: recycle connections after N seconds to prevent stale connections
    # pool_pre_ping: verify connections before using them
    return {
        "pool_size": 20,
        "max_overflow": 30,
        "pool_timeout": 30,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    from cinestream.models import Base
    Base.metadata.create_all(bind=engine)


async def init_db():
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, create_tables)
        logger.info("Database schema ready")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


def ping_db() -> None:
    """Raise if the database cannot answer a trivial query."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    finally:
        db.close()
