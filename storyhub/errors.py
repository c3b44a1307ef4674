"""
Story Service Errors
Exception hierarchy for story submission, with HTTP status mapping
"""
from typing import Any, Dict, List, Optional


class StoryServiceError(Exception):
    """Base class for every error the story service raises on purpose."""

    status_code = 500

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {'code': self.error_code, 'details': self.details}


class ValidationError(StoryServiceError):
    """Malformed or missing request fields. Raised before persistence is touched."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, details={'errors': errors or [message]})
        self.errors = errors or [message]


class NotFoundError(StoryServiceError):
    """Story absent, or owned by somebody else."""

    status_code = 404

    def __init__(self, story_id: str):
        super().__init__(
            'Story not found or you are not authorized to modify this story',
            details={'storyId': story_id},
        )
        self.story_id = story_id


class SessionAlreadyCompleteError(StoryServiceError):
    status_code = 409

    def __init__(self, story_id: str):
        super().__init__(
            'Story upload is already complete; start a new edit at chunk index 0',
            details={'storyId': story_id},
        )
        self.story_id = story_id


class OutOfOrderChunkError(StoryServiceError):
    """A fragment skipped ahead of the next expected index. Retry from `expected_index`."""

    status_code = 409

    def __init__(self, story_id: str, chunk_index: int, expected_index: int):
        super().__init__(
            f'Chunk {chunk_index} arrived out of order; expected chunk {expected_index}',
            details={'storyId': story_id, 'chunkIndex': chunk_index, 'expectedChunkIndex': expected_index},
        )
        self.story_id = story_id
        self.chunk_index = chunk_index
        self.expected_index = expected_index


class UploadInProgressError(StoryServiceError):
    status_code = 409

    def __init__(self, story_id: str, received_chunks: int, total_chunks: int):
        super().__init__(
            'Story has a chunked upload in progress; finish it before editing',
            details={'storyId': story_id, 'chunksReceived': received_chunks, 'totalChunks': total_chunks},
        )


class PersistenceError(StoryServiceError):
    """Transaction could not be committed. The whole submission may be retried."""

    status_code = 503


class StaleSessionError(PersistenceError):
    """A concurrent writer changed the chunk session between read and commit."""


class StorageCleanupError(StoryServiceError):
    """Deleting a superseded media object failed. Logged, never surfaced to clients."""

    def __init__(self, url: str, reason: str):
        super().__init__(f'Failed to delete media object {url}: {reason}', details={'url': url})
        self.url = url
