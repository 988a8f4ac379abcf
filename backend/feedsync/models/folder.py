from sqlalchemy import Column, String, DateTime, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from feedsync.core.database import Base


def get_utc_now():
    """Return current UTC time with timezone info"""
    return datetime.now(timezone.utc)


class Folder(Base):
    __tablename__ = "rss_folders"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_rss_folders_user_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=get_utc_now, nullable=False)

    # Feeds only reference a folder; deleting a folder never deletes feeds
    feeds = relationship("Feed", back_populates="folder", passive_deletes=True)
