"""
Story Service
Single-shot create/edit/delete of stories, the read side, comments and
likes. Chunked submissions go through ReassemblyController instead.
"""
import math
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from . import crud
from .errors import NotFoundError, UploadInProgressError, ValidationError
from .reassembly import SessionState, apply_metadata, session_state
from .transactions import DEFAULT_RETRY_CONFIG, RetryConfig, run_in_transaction
from .upload_mode import SingleShotSubmission

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 10

TIME_UNITS = (
    ('year', 31536000),
    ('month', 2592000),
    ('week', 604800),
    ('day', 86400),
    ('hour', 3600),
    ('minute', 60),
    ('second', 1),
)


def time_ago(moment: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """Render `moment` as "3 days ago"; anything under 30 seconds (or in the future) is "just now"."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        # SQLite hands back naive UTC timestamps
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = int((now - moment).total_seconds())
    if seconds < 30:
        return 'just now'
    for unit, size in TIME_UNITS:
        n = seconds // size
        if n >= 1:
            return f"{n} {unit}{'' if n == 1 else 's'} ago"
    return 'just now'


def is_visible_to(story, actor_id: int) -> bool:
    """Published stories are public to members, drafts only to their author."""
    return story is not None and (story.is_complete or story.owner_id == actor_id)


@dataclass
class StoryChange:
    story: object
    superseded_media: List[str] = field(default_factory=list)


@dataclass
class Engagement:
    comment_count: int = 0
    like_count: int = 0


@dataclass
class StoryProgress:
    story_id: str
    state: SessionState
    received_chunks: Optional[int] = None
    total_chunks: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.state is SessionState.COMPLETE


class StoryService:
    def __init__(self, sessionmaker, retry: RetryConfig = DEFAULT_RETRY_CONFIG):
        self.sessionmaker = sessionmaker
        self.retry = retry

    async def create_story(self, actor_id: int, submission: SingleShotSubmission):
        if not submission.content:
            raise ValidationError('Story content cannot be empty')
        meta = submission.metadata

        async def work(session):
            return await crud.insert_story(
                session, actor_id, submission.content, is_complete=True,
                title=meta.title, image_url=meta.image, audio_url=meta.audio,
                audio_duration=meta.audio_duration,
            )

        story = await run_in_transaction(self.sessionmaker, work, self.retry)
        logger.info({'msg': 'story_created', 'story_id': story.id, 'actor_id': actor_id})
        return story

    async def edit_story(self, actor_id: int, story_id: str, submission: SingleShotSubmission) -> StoryChange:
        if submission.content is None and submission.metadata.is_empty():
            raise ValidationError('No update fields provided')

        async def work(session):
            story = await crud.lock_story(session, story_id)
            if story is None or story.owner_id != actor_id:
                raise NotFoundError(story_id)
            cs = await crud.get_chunk_session(session, story_id)
            if session_state(story, cs) is SessionState.IN_PROGRESS:
                raise UploadInProgressError(story_id, cs.received_chunks, cs.total_chunks)
            if submission.content is not None:
                story.content = submission.content
            superseded = apply_metadata(story, submission.metadata)
            await session.flush()
            return StoryChange(story, superseded)

        change = await run_in_transaction(self.sessionmaker, work, self.retry)
        logger.info({'msg': 'story_updated', 'story_id': story_id, 'actor_id': actor_id})
        return change

    async def delete_story(self, actor_id: int, story_id: str) -> StoryChange:
        async def work(session):
            story = await crud.lock_story(session, story_id)
            if story is None or story.owner_id != actor_id:
                raise NotFoundError(story_id)
            media = story.media_urls()
            await crud.delete_story(session, story)
            return StoryChange(story, media)

        change = await run_in_transaction(self.sessionmaker, work, self.retry)
        logger.info({'msg': 'story_deleted', 'story_id': story_id, 'actor_id': actor_id})
        return change

    async def get_story(self, actor_id: int, story_id: str):
        """Returns (story, Engagement). Another user's draft is reported as missing."""
        async with self.sessionmaker() as session:
            story = await crud.get_story(session, story_id)
            if not is_visible_to(story, actor_id):
                raise NotFoundError(story_id)
            counts = await crud.engagement_counts(session, [story.id])
        return story, Engagement(*counts[story.id])

    async def get_progress(self, actor_id: int, story_id: str) -> StoryProgress:
        async with self.sessionmaker() as session:
            story = await crud.get_story(session, story_id)
            if story is None or story.owner_id != actor_id:
                raise NotFoundError(story_id)
            cs = await crud.get_chunk_session(session, story_id)
        state = session_state(story, cs)
        if cs is None:
            return StoryProgress(story_id, state)
        return StoryProgress(story_id, state, cs.received_chunks, cs.total_chunks)

    async def list_stories(self, page: int = 1, limit: int = MAX_PAGE_SIZE):
        page_number = max(page, 1)
        page_size = max(min(limit, MAX_PAGE_SIZE), 1)
        async with self.sessionmaker() as session:
            stories = await crud.list_complete_stories(session, (page_number - 1) * page_size, page_size)
            total = await crud.count_complete_stories(session)
            counts = await crud.engagement_counts(session, [s.id for s in stories])
        engagement = {story_id: Engagement(*pair) for story_id, pair in counts.items()}
        total_pages = math.ceil(total / page_size)
        pagination = {
            'current_page': page_number,
            'page_size': page_size,
            'total_stories': total,
            'total_pages': total_pages,
            'has_next_page': page_number < total_pages,
            'has_previous_page': page_number > 1,
        }
        return stories, engagement, pagination

    async def list_my_stories(self, actor_id: int):
        async with self.sessionmaker() as session:
            stories = await crud.list_owner_stories(session, actor_id)
            counts = await crud.engagement_counts(session, [s.id for s in stories])
        return stories, {story_id: Engagement(*pair) for story_id, pair in counts.items()}

    # comments and likes, published stories only

    async def _lock_published(self, session, story_id: str):
        story = await crud.lock_story(session, story_id)
        if story is None or not story.is_complete:
            raise NotFoundError(story_id)
        return story

    async def add_comment(self, actor_id: int, story_id: str, content: str):
        """Returns (comment, author username)."""
        if not content or not content.strip():
            raise ValidationError('Comment cannot be empty')

        async def work(session):
            await self._lock_published(session, story_id)
            comment = await crud.insert_comment(session, story_id, actor_id, content)
            author = await crud.get_user_by_id(session, actor_id)
            return comment, author.username

        comment, author = await run_in_transaction(self.sessionmaker, work, self.retry)
        logger.info({'msg': 'comment_added', 'story_id': story_id, 'actor_id': actor_id, 'comment_id': comment.id})
        return comment, author

    async def list_comments(self, actor_id: int, story_id: str):
        """Returns [(comment, author username)], oldest first."""
        async with self.sessionmaker() as session:
            story = await crud.get_story(session, story_id)
            if not is_visible_to(story, actor_id):
                raise NotFoundError(story_id)
            return await crud.list_comments(session, story_id)

    async def toggle_like(self, actor_id: int, story_id: str):
        """Returns (liked, like count) after the toggle."""
        async def work(session):
            await self._lock_published(session, story_id)
            liked = await crud.toggle_like(session, actor_id, story_id)
            return liked, await crud.count_likes(session, story_id)

        liked, count = await run_in_transaction(self.sessionmaker, work, self.retry)
        logger.info({'msg': 'story_liked' if liked else 'story_unliked', 'story_id': story_id, 'actor_id': actor_id})
        return liked, count
