"""
Row-lock serialization against a real PostgreSQL server.

SQLite ignores SELECT ... FOR UPDATE, so these run only when
STORYHUB_TEST_POSTGRES_URL points at a disposable database. Retries are
disabled: the row lock alone has to keep writers apart.
"""
import asyncio
import pytest

from storyhub import crud
from storyhub.reassembly import FragmentAction, ReassemblyController
from storyhub.story_service import StoryService
from storyhub.transactions import RetryConfig
from storyhub.upload_mode import SingleShotSubmission, StoryMetadata

pytestmark = pytest.mark.postgres

NO_RETRY = RetryConfig(max_retries=0)


@pytest.fixture
def pg_controller(pg_session_factory):
    return ReassemblyController(pg_session_factory, NO_RETRY)


async def load(session_factory, story_id):
    async with session_factory() as session:
        return await crud.get_story(session, story_id), await crud.get_chunk_session(session, story_id)


@pytest.mark.asyncio
async def test_duplicate_deliveries_wait_on_the_row_lock(pg_controller, pg_session_factory, pg_owner_id):
    owner = pg_owner_id
    first = await pg_controller.submit_fragment(owner, None, 0, 3, 'Once upon a ')

    results = await asyncio.gather(*[
        pg_controller.submit_fragment(owner, first.story_id, 1, 3, 'time there was a ')
        for _ in range(5)
    ])

    actions = [r.action for r in results]
    assert actions.count(FragmentAction.APPEND) == 1
    assert actions.count(FragmentAction.REPLAY) == 4
    story, cs = await load(pg_session_factory, first.story_id)
    assert story.content == cs.content == 'Once upon a time there was a '
    assert cs.received_chunks == 2


@pytest.mark.asyncio
async def test_full_upload_with_every_chunk_duplicated(pg_controller, pg_session_factory, pg_owner_id):
    owner = pg_owner_id
    fragments = ['The ', 'quick ', 'brown ', 'fox.']
    first = await pg_controller.submit_fragment(owner, None, 0, len(fragments), fragments[0])

    for index, fragment in enumerate(fragments[1:], start=1):
        await asyncio.gather(
            pg_controller.submit_fragment(owner, first.story_id, index, len(fragments), fragment),
            pg_controller.submit_fragment(owner, first.story_id, index, len(fragments), fragment),
        )

    story, cs = await load(pg_session_factory, first.story_id)
    assert story.content == 'The quick brown fox.'
    assert story.is_complete is True
    assert cs.received_chunks == cs.total_chunks == 4


@pytest.mark.asyncio
async def test_concurrent_restarts_first_one_wins(pg_controller, pg_session_factory, pg_owner_id):
    owner = pg_owner_id
    service = StoryService(pg_session_factory, NO_RETRY)
    story = await service.create_story(owner, SingleShotSubmission('Finished.', StoryMetadata()))

    results = await asyncio.gather(
        pg_controller.submit_fragment(owner, story.id, 0, 2, 'Left '),
        pg_controller.submit_fragment(owner, story.id, 0, 2, 'Right '),
    )

    assert sorted(r.action.value for r in results) == ['replay', 'restart']
    stored, cs = await load(pg_session_factory, story.id)
    assert stored.content == cs.content
    assert stored.content in ('Left ', 'Right ')
    assert (cs.received_chunks, cs.total_chunks, cs.is_complete) == (1, 2, False)
