from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from ..schemas.stories import (
    ActionOkOut,
    ChunkProgressOut,
    CommentEnvelopeOut,
    CommentIn,
    CommentOut,
    LikeOut,
    MediaPresignIn,
    MediaPresignOut,
    PaginationOut,
    StoryEnvelopeOut,
    StoryOut,
    StoryPageOut,
    StorySubmissionIn,
)
from ..auth import require_roles
from ..models import get_sessionmaker
from ..reassembly import FragmentAction, FragmentResult, ReassemblyController
from ..storage import MediaStorage, cleanup_media, get_media_storage
from ..story_service import Engagement, StoryService, time_ago
from ..upload_mode import UploadMode, select_upload_mode
from typing import List, Optional

router = APIRouter()

student_only = require_roles('student')
any_member = require_roles('student', 'parent', 'therapist')
likers = require_roles('student', 'parent')


def get_reassembly_controller(sessionmaker=Depends(get_sessionmaker)) -> ReassemblyController:
    return ReassemblyController(sessionmaker)


def get_story_service(sessionmaker=Depends(get_sessionmaker)) -> StoryService:
    return StoryService(sessionmaker)


def story_out(story, engagement: Optional[Engagement] = None) -> StoryOut:
    out = StoryOut.model_validate(story)
    updates = {'time_ago': time_ago(story.created_at)}
    if engagement is not None:
        updates.update(comment_count=engagement.comment_count, like_count=engagement.like_count)
    return out.model_copy(update=updates)


def comment_out(comment, author_name: str) -> CommentOut:
    return CommentOut(
        id=comment.id,
        story_id=comment.story_id,
        author_id=comment.author_id,
        author_name=author_name,
        content=comment.content,
        created_at=comment.created_at,
        time_ago=time_ago(comment.created_at),
    )


def progress_out(result: FragmentResult) -> ChunkProgressOut:
    return ChunkProgressOut(
        story_id=result.story_id,
        state=result.state.value,
        chunks_received=result.received_chunks,
        total_chunks=result.total_chunks,
        is_complete=result.is_complete,
        message=result.message,
    )


@router.post('/', status_code=201)
async def submit_story(
    payload: StorySubmissionIn,
    response: Response,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(student_only),
    controller: ReassemblyController = Depends(get_reassembly_controller),
    service: StoryService = Depends(get_story_service),
    storage: MediaStorage = Depends(get_media_storage),
):
    """Create a story in one request, or submit one fragment of a chunked upload."""
    submission = select_upload_mode(payload)
    if submission.mode is UploadMode.SINGLE_SHOT:
        story = await service.create_story(current_user['id'], submission)
        return StoryEnvelopeOut(data=story_out(story, Engagement()), message='Story created successfully')

    result = await controller.submit(current_user['id'], submission)
    if result.action is not FragmentAction.START:
        response.status_code = 200
    background_tasks.add_task(cleanup_media, storage, result.superseded_media)
    return progress_out(result)


@router.put('/{story_id}')
async def edit_story(
    story_id: str,
    payload: StorySubmissionIn,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(student_only),
    controller: ReassemblyController = Depends(get_reassembly_controller),
    service: StoryService = Depends(get_story_service),
    storage: MediaStorage = Depends(get_media_storage),
):
    """Edit a story in place, or restart it as a chunked upload from chunk index 0."""
    submission = select_upload_mode(payload, story_id=story_id)
    if submission.mode is UploadMode.SINGLE_SHOT:
        change = await service.edit_story(current_user['id'], story_id, submission)
        background_tasks.add_task(cleanup_media, storage, change.superseded_media)
        return StoryEnvelopeOut(data=story_out(change.story), message='Story updated successfully')

    result = await controller.submit(current_user['id'], submission)
    background_tasks.add_task(cleanup_media, storage, result.superseded_media)
    return progress_out(result)


@router.get('/', response_model=StoryPageOut)
async def list_stories(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: dict = Depends(any_member),
    service: StoryService = Depends(get_story_service),
):
    stories, engagement, pagination = await service.list_stories(page, limit)
    return StoryPageOut(
        data=[story_out(s, engagement[s.id]) for s in stories],
        pagination=PaginationOut(**pagination),
    )


@router.get('/me', response_model=List[StoryOut])
async def list_my_stories(
    current_user: dict = Depends(student_only),
    service: StoryService = Depends(get_story_service),
):
    stories, engagement = await service.list_my_stories(current_user['id'])
    return [story_out(s, engagement[s.id]) for s in stories]


@router.post('/media/presign', response_model=MediaPresignOut)
async def presign_media_upload(
    payload: MediaPresignIn,
    current_user: dict = Depends(student_only),
    storage: MediaStorage = Depends(get_media_storage),
):
    return await storage.presign_upload(current_user['id'], payload.file_type)


@router.get('/{story_id}', response_model=StoryOut)
async def get_story(
    story_id: str,
    current_user: dict = Depends(any_member),
    service: StoryService = Depends(get_story_service),
):
    story, engagement = await service.get_story(current_user['id'], story_id)
    return story_out(story, engagement)


@router.get('/{story_id}/progress', response_model=ChunkProgressOut)
async def get_progress(
    story_id: str,
    current_user: dict = Depends(student_only),
    service: StoryService = Depends(get_story_service),
):
    progress = await service.get_progress(current_user['id'], story_id)
    return ChunkProgressOut(
        story_id=progress.story_id,
        state=progress.state.value,
        chunks_received=progress.received_chunks,
        total_chunks=progress.total_chunks,
        is_complete=progress.is_complete,
        message='Upload complete' if progress.is_complete else 'Upload in progress',
    )


@router.delete('/{story_id}', response_model=ActionOkOut)
async def delete_story(
    story_id: str,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(student_only),
    service: StoryService = Depends(get_story_service),
    storage: MediaStorage = Depends(get_media_storage),
):
    change = await service.delete_story(current_user['id'], story_id)
    background_tasks.add_task(cleanup_media, storage, change.superseded_media)
    return ActionOkOut(message='Story deleted successfully')


@router.post('/{story_id}/comments', response_model=CommentEnvelopeOut, status_code=201)
async def add_comment(
    story_id: str,
    payload: CommentIn,
    current_user: dict = Depends(student_only),
    service: StoryService = Depends(get_story_service),
):
    comment, author = await service.add_comment(current_user['id'], story_id, payload.comment)
    return CommentEnvelopeOut(data=comment_out(comment, author))


@router.get('/{story_id}/comments', response_model=List[CommentOut])
async def list_comments(
    story_id: str,
    current_user: dict = Depends(any_member),
    service: StoryService = Depends(get_story_service),
):
    rows = await service.list_comments(current_user['id'], story_id)
    return [comment_out(comment, author) for comment, author in rows]


@router.post('/{story_id}/like', response_model=LikeOut)
async def toggle_like(
    story_id: str,
    current_user: dict = Depends(likers),
    service: StoryService = Depends(get_story_service),
):
    liked, count = await service.toggle_like(current_user['id'], story_id)
    return LikeOut(liked=liked, like_count=count)
