import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Unbound until init_engine() runs in the service lifespan
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

Base = declarative_base()


def build_database_url(user: str, password: str, host: str, port: str, db: str) -> str:
    """Postgres URL from its parts."""
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


def init_engine(database_url: str, **engine_kwargs) -> Engine:
    """Create the engine, bind the session factory and create missing tables."""
    engine_kwargs.setdefault("echo", False)
    engine_kwargs.setdefault("pool_pre_ping", True)
    engine = create_engine(database_url, **engine_kwargs)
    SessionLocal.configure(bind=engine)

    logger.info("Initializing database...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized")
    return engine


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
