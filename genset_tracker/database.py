"""Engine, session factory and the request-scoped session dependency."""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from genset_tracker.config import settings

logger = logging.getLogger("gensets.database")


def normalize_url(url: str) -> str:
    # Hosted Postgres providers still hand out postgres:// URLs
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def engine_options(url: str) -> dict:
    """Keyword arguments for create_engine, per backend."""
    options = {"echo": settings.DEBUG}
    if not url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
        return options

    options["connect_args"] = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, or every session sees an empty database
        options["poolclass"] = StaticPool
    return options


DATABASE_URL = normalize_url(settings.DATABASE_URL)

engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))
logger.debug("Store backend: %s", engine.dialect.name)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """One session per request, closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
