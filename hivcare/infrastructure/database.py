from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from hivcare.core.config import settings


def build_engine(database_url: str, echo: bool = False):
    """Create a synchronous engine for SQLite or PostgreSQL"""
    if "sqlite" in database_url.lower():
        engine = create_engine(
            database_url,
            pool_pre_ping=True,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 15}
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo
    )


def build_session_factory(bind):
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
SessionLocal = build_session_factory(engine)

# Base model
Base = declarative_base()


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database tables"""
    # Import models so they register on Base.metadata
    from hivcare.domain.appointments import models as _appointments  # noqa: F401
    from hivcare.domain.treatment import models as _treatment  # noqa: F401
    from hivcare.domain.payments import models as _payments  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def close_db():
    """Close database connections"""
    engine.dispose()
