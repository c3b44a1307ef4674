from sqlalchemy import Table, Column, Integer, String, ForeignKey, UniqueConstraint
from . import Base

story_likes_table = Table(
    'story_likes', Base.metadata,
    Column('id', Integer, primary_key=True),
    Column('user_id', Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
    Column('story_id', String(36), ForeignKey('stories.id', ondelete='CASCADE'), index=True, nullable=False),
    UniqueConstraint('user_id', 'story_id', name='uix_user_story_like'),
)
