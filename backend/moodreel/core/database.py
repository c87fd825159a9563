from sqlalchemy.orm import sessionmaker
from sqlalchemy import create_engine
import asyncio
import logging

from moodreel.core.config import settings

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None

def get_engine():
    """Lazily build the engine so importing the package never opens a connection."""
    global _engine
    if _engine is None:
        _engine = create_engine(
            settings.database_url,
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True
        )
    return _engine

def get_session_factory():
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal

async def init_db():
    from moodreel.models import Base
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, lambda: Base.metadata.create_all(bind=get_engine()))
    except Exception as e:
        logger.warning(f"Database init skipped: {e}")
