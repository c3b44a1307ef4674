from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from . import Base


class StoryComment(Base):
    __tablename__ = 'story_comments'
    id = Column(Integer, primary_key=True, index=True)
    story_id = Column(String(36), ForeignKey('stories.id', ondelete='CASCADE'), index=True, nullable=False)
    author_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
