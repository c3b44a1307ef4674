from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, CheckConstraint
from . import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ChunkSession(Base):
    """Reassembly bookkeeping for one story, at most one row per story.

    `version` is the ORM version counter: every UPDATE is issued with
    ``WHERE version = <loaded value>`` and raises StaleDataError when a
    concurrent writer got there first.
    """
    __tablename__ = 'chunk_sessions'
    story_id = Column(String(36), ForeignKey('stories.id', ondelete='CASCADE'), primary_key=True)
    received_chunks = Column(Integer, nullable=False)
    total_chunks = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    is_complete = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint('received_chunks > 0', name='ck_chunk_sessions_received_positive'),
        CheckConstraint('received_chunks <= total_chunks', name='ck_chunk_sessions_received_le_total'),
    )
    __mapper_args__ = {'version_id_col': version}
