"""SavedItem model for links curated by a user."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class SavedItem(Base):
    """One saved link plus its trash/review lifecycle timestamps."""

    __tablename__ = "items"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    title = Column(String, nullable=False, default="New Saved Link")
    thumbnail = Column(Text, nullable=True)
    platform = Column(String, nullable=False, default="other", index=True)
    category = Column(String, nullable=True, default="Inbox")  # grouping key for spaces
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="items")
