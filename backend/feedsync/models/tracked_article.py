from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Boolean, Uuid, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from feedsync.core.database import Base


def get_utc_now():
    """Return current UTC time with timezone info"""
    return datetime.now(timezone.utc)


class TrackedArticle(Base):
    """Per-user read state of one feed item, keyed by its resolved identity"""

    __tablename__ = "rss_articles"
    __table_args__ = (
        UniqueConstraint("feed_id", "user_id", "guid", name="uq_rss_articles_feed_user_guid"),
        Index("idx_rss_articles_user_unread", "user_id", "is_read"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    feed_id = Column(Uuid, ForeignKey("rss_feeds.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, nullable=False, index=True)
    guid = Column(String, nullable=False)  # Resolved item identity (guid, else link, else title)

    # Read state
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)  # Set once, on the first transition to read
    first_seen_at = Column(DateTime(timezone=True), default=get_utc_now, nullable=False)

    # Display fields captured when the item was first seen
    title = Column(String, nullable=False, default="")
    link = Column(String, nullable=True)
    author = Column(String, nullable=True)
    pub_date = Column(DateTime(timezone=True), nullable=True)
    content_snippet = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)

    # Relationships
    feed = relationship("Feed", back_populates="articles")
