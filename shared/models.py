from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Float, Index, Integer, String
from shared.database import Base


def utcnow() -> datetime:
    # naive UTC, matching what SQLite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_page_session", "page_url", "session_id"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(255), nullable=False, index=True)
    page_url = Column(String(2048), nullable=False, index=True)
    event_type = Column(String(16), nullable=False, index=True)
    element_selector = Column(String(512), nullable=True)
    click_x = Column(Integer, nullable=True)
    click_y = Column(Integer, nullable=True)
    scroll_depth = Column(Float, nullable=True)
    timestamp = Column(BigInteger, nullable=False)
    ingested_at = Column(DateTime, nullable=False, default=utcnow, index=True)
