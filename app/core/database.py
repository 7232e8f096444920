from sqlalchemy import create_engine, event
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool
from sqlalchemy.exc import OperationalError, DisconnectionError
from loguru import logger
from app.core.config import settings

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

def build_engine(database_url: str, **kwargs):
    """Create an engine for the given URL with the journal's pooling defaults"""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        connect_args.update(kwargs.pop("connect_args", {}))
        new_engine = create_engine(
            database_url,
            connect_args=connect_args,
            echo=settings.debug,
            **kwargs
        )
        # For SQLite, we need to enable foreign key constraints
        event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)
        return new_engine

    # PostgreSQL configuration with SSL and connection pooling
    return create_engine(
        database_url,
        echo=settings.debug,
        poolclass=QueuePool,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=settings.database_pool_recycle,
        connect_args={
            "sslmode": settings.database_sslmode,
            "connect_timeout": settings.database_connect_timeout,
            "application_name": "trading_journal"
        },
        **kwargs
    )

engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    except (OperationalError, DisconnectionError) as e:
        logger.error(f"Database connection error: {e}")
        db.rollback()
        raise
    finally:
        db.close()
