"""
Chunked Story Reassembly
Applies story fragments submitted across independent requests, one atomic
transaction per fragment, serialized per story
"""
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from . import crud
from .core import FRAGMENTS_TOTAL, FRAGMENT_SECONDS
from .errors import (
    NotFoundError,
    OutOfOrderChunkError,
    SessionAlreadyCompleteError,
    StoryServiceError,
    UploadInProgressError,
    ValidationError,
)
from .transactions import DEFAULT_RETRY_CONFIG, RetryConfig, run_in_transaction
from .upload_mode import ChunkedSubmission, StoryMetadata

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NOT_STARTED = 'not_started'
    IN_PROGRESS = 'in_progress'
    COMPLETE = 'complete'


class FragmentAction(str, Enum):
    START = 'start'        # index 0, new story
    APPEND = 'append'      # index == received
    REPLAY = 'replay'      # index < received, already applied
    RESTART = 'restart'    # index 0 on a complete story


# state -> actions allowed from it, and the states each action may lead to
TRANSITIONS = {
    SessionState.NOT_STARTED: {FragmentAction.START},
    SessionState.IN_PROGRESS: {FragmentAction.APPEND, FragmentAction.REPLAY},
    SessionState.COMPLETE: {FragmentAction.RESTART},
}
OUTCOMES = {
    FragmentAction.START: {SessionState.IN_PROGRESS, SessionState.COMPLETE},
    FragmentAction.APPEND: {SessionState.IN_PROGRESS, SessionState.COMPLETE},
    FragmentAction.REPLAY: {SessionState.IN_PROGRESS},
    FragmentAction.RESTART: {SessionState.IN_PROGRESS, SessionState.COMPLETE},
}


def session_state(story, chunk_session) -> SessionState:
    if story is None:
        return SessionState.NOT_STARTED
    if chunk_session is None:
        # only single-shot stories lack a session, and they are created complete
        return SessionState.COMPLETE
    return SessionState.COMPLETE if chunk_session.is_complete else SessionState.IN_PROGRESS


def classify_fragment(story_id: Optional[str], state: SessionState, chunk_index: int,
                      received_chunks: int = 0) -> FragmentAction:
    """Pick the action a fragment triggers, raising for illegal ones."""
    if state is SessionState.NOT_STARTED:
        action = FragmentAction.START
    elif state is SessionState.IN_PROGRESS:
        if chunk_index > received_chunks:
            raise OutOfOrderChunkError(story_id, chunk_index, received_chunks)
        action = FragmentAction.REPLAY if chunk_index < received_chunks else FragmentAction.APPEND
    elif chunk_index == 0:
        action = FragmentAction.RESTART
    else:
        raise SessionAlreadyCompleteError(story_id)

    if action not in TRANSITIONS[state]:
        raise SessionAlreadyCompleteError(story_id)
    return action


@dataclass
class FragmentResult:
    story_id: str
    action: FragmentAction
    received_chunks: int
    total_chunks: int
    is_complete: bool
    superseded_media: List[str] = field(default_factory=list)

    @property
    def applied(self) -> bool:
        return self.action is not FragmentAction.REPLAY

    @property
    def state(self) -> SessionState:
        return SessionState.COMPLETE if self.is_complete else SessionState.IN_PROGRESS

    @property
    def message(self) -> str:
        if self.action is FragmentAction.REPLAY:
            return f'Chunk already received ({self.received_chunks} of {self.total_chunks})'
        if self.is_complete:
            return 'Story upload completed successfully'
        if self.action is FragmentAction.RESTART:
            return f'Story edit started, chunk 1 of {self.total_chunks} received'
        return f'Chunk {self.received_chunks} of {self.total_chunks} received'


def apply_metadata(story, metadata: Optional[StoryMetadata]) -> List[str]:
    """Write finalization metadata to the story. Returns media URLs it replaced."""
    superseded = []
    if metadata is None:
        return superseded
    if metadata.title is not None:
        story.title = metadata.title
    if metadata.image is not None:
        if story.image_url and story.image_url != metadata.image:
            superseded.append(story.image_url)
        story.image_url = metadata.image
    if metadata.audio is not None:
        if story.audio_url and story.audio_url != metadata.audio:
            superseded.append(story.audio_url)
        story.audio_url = metadata.audio
    if metadata.audio_duration is not None:
        story.audio_duration = metadata.audio_duration
    return superseded


class ReassemblyController:
    """
    Owns a story and its chunk session for the duration of a chunked upload.

    Each call to `submit_fragment` runs in its own transaction: the story row
    is locked (PostgreSQL) and the chunk session is written with a version
    check, so two requests for the same story never both append on top of
    the same prior content. A losing request is re-run from a fresh read,
    where it usually turns into an idempotent replay.
    """

    def __init__(self, sessionmaker, retry: RetryConfig = DEFAULT_RETRY_CONFIG):
        self.sessionmaker = sessionmaker
        self.retry = retry

    async def submit(self, actor_id: int, submission: ChunkedSubmission) -> FragmentResult:
        return await self.submit_fragment(
            actor_id,
            submission.story_id,
            submission.chunk_index,
            submission.total_chunks,
            submission.fragment,
            submission.metadata,
        )

    async def submit_fragment(self, actor_id: int, story_id: Optional[str], chunk_index: int,
                              total_chunks: int, fragment: str,
                              metadata: Optional[StoryMetadata] = None) -> FragmentResult:
        if chunk_index < 0 or total_chunks < 1 or chunk_index >= total_chunks:
            raise ValidationError(f'Invalid chunk {chunk_index} of {total_chunks}')
        if story_id is None and chunk_index != 0:
            raise ValidationError('storyId is required for chunkIndex greater than 0')

        async def work(session):
            return await self._apply(session, actor_id, story_id, chunk_index, total_chunks, fragment, metadata)

        started = time.perf_counter()
        try:
            result = await run_in_transaction(self.sessionmaker, work, self.retry)
        except StoryServiceError as e:
            FRAGMENTS_TOTAL.labels(outcome=e.error_code).inc()
            logger.info({
                'msg': 'fragment_rejected',
                'story_id': story_id,
                'actor_id': actor_id,
                'chunk_index': chunk_index,
                'total_chunks': total_chunks,
                'error': e.error_code,
            })
            raise
        finally:
            FRAGMENT_SECONDS.observe(time.perf_counter() - started)

        FRAGMENTS_TOTAL.labels(outcome=result.action.value).inc()
        logger.info({
            'msg': 'fragment_applied' if result.applied else 'fragment_replayed',
            'story_id': result.story_id,
            'actor_id': actor_id,
            'chunk_index': chunk_index,
            'received_chunks': result.received_chunks,
            'total_chunks': result.total_chunks,
            'is_complete': result.is_complete,
            'action': result.action.value,
        })
        return result

    async def _apply(self, session, actor_id, story_id, chunk_index, total_chunks, fragment, metadata):
        if story_id is None:
            return await self._start(session, actor_id, total_chunks, fragment, metadata)

        story = await crud.lock_story(session, story_id)
        if story is None or story.owner_id != actor_id:
            raise NotFoundError(story_id)
        cs = await crud.get_chunk_session(session, story_id)
        state = session_state(story, cs)
        received = cs.received_chunks if cs is not None else 0
        action = classify_fragment(story_id, state, chunk_index, received)
        if state is SessionState.IN_PROGRESS:
            self._check_total(story_id, cs, chunk_index, total_chunks)

        if action is FragmentAction.REPLAY:
            return FragmentResult(story_id, action, cs.received_chunks, cs.total_chunks, False)
        if action is FragmentAction.RESTART:
            return await self._restart(session, story, cs, total_chunks, fragment, metadata)
        return await self._append(session, story, cs, chunk_index, total_chunks, fragment, metadata)

    async def _start(self, session, actor_id, total_chunks, fragment, metadata):
        complete = total_chunks == 1
        story = await crud.insert_story(session, actor_id, fragment, is_complete=complete)
        await crud.insert_chunk_session(session, story.id, fragment, total_chunks)
        superseded = apply_metadata(story, metadata) if complete else []
        self._check_outcome(FragmentAction.START, complete)
        return FragmentResult(story.id, FragmentAction.START, 1, total_chunks, complete, superseded)

    @staticmethod
    def _check_total(story_id, cs, chunk_index, total_chunks):
        """The declared total is fixed until the upload completes, retransmissions included."""
        if total_chunks == cs.total_chunks:
            return
        if chunk_index == 0:
            # a restart attempt while the current upload is still open
            raise UploadInProgressError(story_id, cs.received_chunks, cs.total_chunks)
        raise ValidationError(
            f'totalChunks cannot change during an upload (declared {cs.total_chunks}, got {total_chunks})'
        )

    async def _append(self, session, story, cs, chunk_index, total_chunks, fragment, metadata):
        await crud.append_to_chunk_session(session, cs, fragment)
        story.content = cs.content
        superseded = []
        if cs.is_complete:
            superseded = apply_metadata(story, metadata)
            story.is_complete = True
        await session.flush()
        self._check_outcome(FragmentAction.APPEND, cs.is_complete)
        return FragmentResult(story.id, FragmentAction.APPEND, cs.received_chunks, cs.total_chunks,
                              cs.is_complete, superseded)

    async def _restart(self, session, story, cs, total_chunks, fragment, metadata):
        if cs is None:
            cs = await crud.insert_chunk_session(session, story.id, fragment, total_chunks)
        else:
            await crud.reset_chunk_session(session, cs, fragment, total_chunks)
        story.content = fragment
        story.is_complete = cs.is_complete
        superseded = apply_metadata(story, metadata) if cs.is_complete else []
        await session.flush()
        self._check_outcome(FragmentAction.RESTART, cs.is_complete)
        return FragmentResult(story.id, FragmentAction.RESTART, cs.received_chunks, cs.total_chunks,
                              cs.is_complete, superseded)

    @staticmethod
    def _check_outcome(action: FragmentAction, complete: bool):
        target = SessionState.COMPLETE if complete else SessionState.IN_PROGRESS
        if target not in OUTCOMES[action]:
            raise RuntimeError(f'illegal transition: {action.value} -> {target.value}')
