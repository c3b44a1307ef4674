"""stories and chunk sessions

Revision ID: 0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('username', sa.String(150), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True)
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_table('stories',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(50), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(), nullable=True),
        sa.Column('audio_url', sa.String(), nullable=True),
        sa.Column('audio_duration', sa.Float(), nullable=True),
        sa.Column('is_complete', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True)
    )
    op.create_index('ix_stories_owner_id', 'stories', ['owner_id'])
    op.create_index('ix_stories_is_complete', 'stories', ['is_complete'])
    op.create_index('ix_stories_created_at', 'stories', ['created_at'])
    op.create_table('chunk_sessions',
        sa.Column('story_id', sa.String(36), sa.ForeignKey('stories.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('received_chunks', sa.Integer, nullable=False),
        sa.Column('total_chunks', sa.Integer, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_complete', sa.Boolean(), nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('received_chunks > 0', name='ck_chunk_sessions_received_positive'),
        sa.CheckConstraint('received_chunks <= total_chunks', name='ck_chunk_sessions_received_le_total')
    )

def downgrade():
    op.drop_table('chunk_sessions')
    op.drop_table('stories')
    op.drop_table('users')
