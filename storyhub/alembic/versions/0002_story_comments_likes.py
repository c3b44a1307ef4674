"""story comments and likes

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-20 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0002'
down_revision = '0001'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('story_comments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('story_id', sa.String(36), sa.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True)
    )
    op.create_index('ix_story_comments_id', 'story_comments', ['id'])
    op.create_index('ix_story_comments_story_id', 'story_comments', ['story_id'])
    op.create_index('ix_story_comments_created_at', 'story_comments', ['created_at'])
    op.create_table('story_likes',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('story_id', sa.String(36), sa.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('user_id', 'story_id', name='uix_user_story_like')
    )
    op.create_index('ix_story_likes_story_id', 'story_likes', ['story_id'])

def downgrade():
    op.drop_table('story_likes')
    op.drop_table('story_comments')
