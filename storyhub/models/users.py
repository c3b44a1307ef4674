from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime
from . import Base

ROLES = ('student', 'parent', 'therapist')


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default='student')  # student, parent, therapist
    display_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
