"""
Upload Mode Selection
Decides whether a story request is a single-shot submission or one fragment
of a chunked sequence, and validates the fields each mode needs
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .schemas.stories import StorySubmissionIn


class UploadMode(str, Enum):
    SINGLE_SHOT = 'single_shot'
    CHUNKED = 'chunked'


@dataclass(frozen=True)
class StoryMetadata:
    """Finalization fields. Only honoured on a sequence's terminal fragment."""
    title: Optional[str] = None
    image: Optional[str] = None
    audio: Optional[str] = None
    audio_duration: Optional[float] = None

    def is_empty(self) -> bool:
        return all(v is None for v in (self.title, self.image, self.audio, self.audio_duration))


@dataclass(frozen=True)
class SingleShotSubmission:
    content: Optional[str]
    metadata: StoryMetadata
    mode: UploadMode = UploadMode.SINGLE_SHOT


@dataclass(frozen=True)
class ChunkedSubmission:
    story_id: Optional[str]
    chunk_index: int
    total_chunks: int
    fragment: str
    metadata: StoryMetadata
    mode: UploadMode = UploadMode.CHUNKED

    @property
    def starts_sequence(self) -> bool:
        return self.chunk_index == 0

    @property
    def is_terminal(self) -> bool:
        return self.chunk_index == self.total_chunks - 1


Submission = Union[SingleShotSubmission, ChunkedSubmission]


def _parse(payload) -> StorySubmissionIn:
    if isinstance(payload, StorySubmissionIn):
        return payload
    try:
        return StorySubmissionIn.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError('Validation Error', errors=[err['msg'] for err in e.errors()]) from e


def select_upload_mode(payload, story_id: Optional[str] = None) -> Submission:
    """
    Route a submission to the single-shot or chunked path.

    `story_id` is the story addressed by the URL on the edit endpoint. When it
    is given, chunk index 0 restarts that story's sequence. On the create
    endpoint it is None: index 0 starts a new story and any `storyId` in the
    body is ignored, later indexes must name their story in the body.
    """
    data = _parse(payload)
    metadata = StoryMetadata(
        title=data.title,
        image=data.image,
        audio=data.audio,
        audio_duration=data.audio_duration,
    )
    editing = story_id is not None

    if not data.is_chunk:
        if not editing and data.content is None:
            raise ValidationError('Story content cannot be empty')
        return SingleShotSubmission(content=data.content, metadata=metadata)

    errors = []
    if data.chunk_index is None:
        errors.append('chunkIndex is required for chunked uploads')
    elif data.chunk_index < 0:
        errors.append('chunkIndex must be 0 or greater')
    if data.total_chunks is None:
        errors.append('totalChunks is required for chunked uploads')
    elif data.total_chunks < 1:
        errors.append('totalChunks must be at least 1')
    if not errors and data.chunk_index >= data.total_chunks:
        errors.append('chunkIndex must be less than totalChunks')
    if data.content is None:
        errors.append('Story content cannot be empty')
    if errors:
        raise ValidationError('Validation Error', errors=errors)

    if editing:
        target = story_id
    elif data.chunk_index == 0:
        target = None
    else:
        if not data.story_id:
            raise ValidationError('storyId is required for chunkIndex greater than 0')
        target = data.story_id

    return ChunkedSubmission(
        story_id=target,
        chunk_index=data.chunk_index,
        total_chunks=data.total_chunks,
        fragment=data.content,
        metadata=metadata,
    )
