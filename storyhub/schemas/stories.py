from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional

CONTENT_MAX_LENGTH = 1000
TITLE_MIN_LENGTH = 2
TITLE_MAX_LENGTH = 50


class StorySubmissionIn(BaseModel):
    """Body of a story create or edit request, single-shot or one chunk of a sequence."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    is_chunk: bool = False
    chunk_index: Optional[int] = None
    total_chunks: Optional[int] = None
    story_id: Optional[str] = None
    content: Optional[str] = Field(None, min_length=1, max_length=CONTENT_MAX_LENGTH)
    title: Optional[str] = Field(None, min_length=TITLE_MIN_LENGTH, max_length=TITLE_MAX_LENGTH)
    image: Optional[str] = None
    audio: Optional[str] = None
    audio_duration: Optional[float] = Field(None, ge=0)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, from_attributes=True)


class StoryOut(CamelModel):
    id: str
    owner_id: int
    title: Optional[str] = None
    content: str
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    audio_duration: Optional[float] = None
    is_complete: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    comment_count: Optional[int] = None
    like_count: Optional[int] = None
    time_ago: Optional[str] = None


class StoryEnvelopeOut(CamelModel):
    data: StoryOut
    message: str
    status: bool = True


class ChunkProgressOut(CamelModel):
    story_id: str
    state: str
    chunks_received: Optional[int] = None
    total_chunks: Optional[int] = None
    is_complete: bool
    message: str
    status: bool = True


class PaginationOut(CamelModel):
    current_page: int
    page_size: int
    total_stories: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class StoryPageOut(CamelModel):
    data: List[StoryOut]
    pagination: PaginationOut
    message: str = 'Stories retrieved successfully'
    status: bool = True


class MediaPresignIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    file_type: str


class MediaPresignOut(CamelModel):
    upload_url: str
    object_url: str
    key: str


class ActionOkOut(BaseModel):
    status: bool = True
    message: Optional[str] = None


class CommentIn(BaseModel):
    comment: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH)


class CommentOut(CamelModel):
    id: int
    story_id: str
    author_id: int
    author_name: str
    content: str
    created_at: Optional[datetime] = None
    time_ago: Optional[str] = None


class CommentEnvelopeOut(CamelModel):
    data: CommentOut
    message: str = 'Comment added successfully'
    status: bool = True


class LikeOut(CamelModel):
    liked: bool
    like_count: int
    status: bool = True
