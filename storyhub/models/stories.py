from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, ForeignKey
from . import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Story(Base):
    __tablename__ = 'stories'
    id = Column(String(36), primary_key=True)
    owner_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    title = Column(String(50), nullable=True)
    content = Column(Text, nullable=False, default='')
    image_url = Column(String, nullable=True)
    audio_url = Column(String, nullable=True)
    audio_duration = Column(Float, nullable=True)  # seconds
    is_complete = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def media_urls(self):
        return [url for url in (self.image_url, self.audio_url) if url]
