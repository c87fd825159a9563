"""
models.py

SQLAlchemy models read by the discovery core. The watchlist table is owned
by the watchlist service; discovery only reads genres from it.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from sqlalchemy.orm import declarative_base
from moodreel.utils.timezone import utc_now

Base = declarative_base()

class WatchlistItem(Base):
    __tablename__ = "watchlist_items"
    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    content_id = Column(Integer, nullable=False)
    content_type = Column(String, nullable=False)  # 'movie' or 'series'
    genres = Column(Text, nullable=True)  # JSON array of ids or {id, name} objects
    added_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        Index("ix_watchlist_user_content", "user_id", "content_type", "content_id", unique=True),
    )
