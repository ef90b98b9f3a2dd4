from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from apolon.core.config import get_settings


@lru_cache
def get_engine() -> Engine:
    """Get the cached engine for the configured database."""
    settings = get_settings()
    return create_engine(
        settings.database_url,
        echo=settings.DEBUG,
        future=True,
        pool_pre_ping=True,
        connect_args={
            "connect_timeout": 10,
            "options": "-c timezone=utc",
        },
    )
