from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from shared.config import settings

Base = declarative_base()


def create_db_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url)

    db_engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT},
    )

    @event.listens_for(db_engine, "connect")
    def _enable_wal(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return db_engine


def create_session_factory(db_engine: Engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = create_session_factory(engine)
