from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from feedsync.core.database import Base


def get_utc_now():
    """Return current UTC time with timezone info"""
    return datetime.now(timezone.utc)


class Feed(Base):
    __tablename__ = "rss_feeds"
    __table_args__ = (
        UniqueConstraint("user_id", "url", name="uq_rss_feeds_user_url"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    folder_id = Column(Uuid, ForeignKey("rss_folders.id", ondelete="SET NULL"), nullable=True, index=True)
    url = Column(String, nullable=False)
    title = Column(String, nullable=False)
    site_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=get_utc_now, nullable=False)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    folder = relationship("Folder", back_populates="feeds")
    articles = relationship(
        "TrackedArticle",
        back_populates="feed",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
