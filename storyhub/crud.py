import uuid
from sqlalchemy import select, func, delete, insert
from .models.users import User
from .models.stories import Story
from .models.chunk_sessions import ChunkSession
from .models.comments import StoryComment
from .models.likes import story_likes_table

# All helpers take an open AsyncSession so callers can group them into one
# transaction; none of them commit.


async def get_user_by_id(session, user_id: int):
    q = await session.execute(select(User).where(User.id == user_id))
    return q.scalars().first()


# stories

async def get_story(session, story_id: str):
    q = await session.execute(select(Story).where(Story.id == story_id))
    return q.scalars().first()


async def lock_story(session, story_id: str):
    """Load a story holding its row lock until the transaction ends.

    SQLite has no row locks and renders no FOR UPDATE; there the chunk
    session's version check is what serializes writers.
    """
    q = await session.execute(select(Story).where(Story.id == story_id).with_for_update())
    return q.scalars().first()


async def insert_story(session, owner_id: int, content: str, is_complete: bool, title=None,
                       image_url=None, audio_url=None, audio_duration=None):
    story = Story(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        content=content,
        is_complete=is_complete,
        title=title,
        image_url=image_url,
        audio_url=audio_url,
        audio_duration=audio_duration,
    )
    session.add(story)
    await session.flush()
    return story


async def delete_story(session, story: Story):
    # explicit so SQLite without foreign key enforcement behaves like PostgreSQL
    await session.execute(delete(ChunkSession).where(ChunkSession.story_id == story.id))
    await session.execute(delete(StoryComment).where(StoryComment.story_id == story.id))
    await session.execute(delete(story_likes_table).where(story_likes_table.c.story_id == story.id))
    await session.delete(story)
    await session.flush()


async def list_complete_stories(session, offset: int, limit: int):
    q = await session.execute(
        select(Story)
        .where(Story.is_complete.is_(True))
        .order_by(Story.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return q.scalars().all()


async def count_complete_stories(session) -> int:
    q = await session.execute(select(func.count(Story.id)).where(Story.is_complete.is_(True)))
    return q.scalar_one()


async def list_owner_stories(session, owner_id: int):
    q = await session.execute(
        select(Story).where(Story.owner_id == owner_id).order_by(Story.created_at.desc())
    )
    return q.scalars().all()


# chunk sessions

async def get_chunk_session(session, story_id: str):
    q = await session.execute(select(ChunkSession).where(ChunkSession.story_id == story_id))
    return q.scalars().first()


async def insert_chunk_session(session, story_id: str, fragment: str, total_chunks: int):
    cs = ChunkSession(
        story_id=story_id,
        received_chunks=1,
        total_chunks=total_chunks,
        content=fragment,
        is_complete=total_chunks == 1,
    )
    session.add(cs)
    await session.flush()
    return cs


async def append_to_chunk_session(session, cs: ChunkSession, fragment: str):
    """Apply the next fragment. Flushing raises StaleDataError if `cs` changed underneath us."""
    cs.content = cs.content + fragment
    cs.received_chunks = cs.received_chunks + 1
    cs.is_complete = cs.received_chunks == cs.total_chunks
    await session.flush()
    return cs


async def reset_chunk_session(session, cs: ChunkSession, fragment: str, total_chunks: int):
    cs.content = fragment
    cs.received_chunks = 1
    cs.total_chunks = total_chunks
    cs.is_complete = total_chunks == 1
    await session.flush()
    return cs


async def count_chunk_sessions(session, story_id: str) -> int:
    q = await session.execute(select(func.count()).select_from(ChunkSession).where(ChunkSession.story_id == story_id))
    return q.scalar_one()


# comments and likes

async def insert_comment(session, story_id: str, author_id: int, content: str):
    comment = StoryComment(story_id=story_id, author_id=author_id, content=content)
    session.add(comment)
    await session.flush()
    return comment


async def list_comments(session, story_id: str):
    """Comments oldest first, each paired with its author's username."""
    q = await session.execute(
        select(StoryComment, User.username)
        .join(User, User.id == StoryComment.author_id)
        .where(StoryComment.story_id == story_id)
        .order_by(StoryComment.created_at, StoryComment.id)
    )
    return q.all()


async def toggle_like(session, user_id: int, story_id: str) -> bool:
    """Like the story, or remove an existing like. Returns whether it is liked now."""
    removed = await session.execute(
        delete(story_likes_table).where(
            story_likes_table.c.user_id == user_id, story_likes_table.c.story_id == story_id,
        )
    )
    if removed.rowcount:
        return False
    await session.execute(insert(story_likes_table).values(user_id=user_id, story_id=story_id))
    return True


async def count_likes(session, story_id: str) -> int:
    q = await session.execute(
        select(func.count()).select_from(story_likes_table).where(story_likes_table.c.story_id == story_id)
    )
    return q.scalar_one()


async def engagement_counts(session, story_ids):
    """Map story id -> (comment count, like count) for the given stories."""
    counts = {story_id: [0, 0] for story_id in story_ids}
    if not counts:
        return {}
    comments = await session.execute(
        select(StoryComment.story_id, func.count())
        .where(StoryComment.story_id.in_(list(counts)))
        .group_by(StoryComment.story_id)
    )
    for story_id, n in comments.all():
        counts[story_id][0] = n
    likes = await session.execute(
        select(story_likes_table.c.story_id, func.count())
        .where(story_likes_table.c.story_id.in_(list(counts)))
        .group_by(story_likes_table.c.story_id)
    )
    for story_id, n in likes.all():
        counts[story_id][1] = n
    return {story_id: tuple(pair) for story_id, pair in counts.items()}
