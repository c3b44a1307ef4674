import os
import asyncio
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

# Configure test environment before the app reads it
os.environ.setdefault('DATABASE_URL', 'sqlite+aiosqlite:///:memory:')
os.environ.setdefault('JWT_SECRET', 'test-secret')

from storyhub.auth import create_access_token  # noqa: E402
from storyhub.errors import StorageCleanupError  # noqa: E402
from storyhub.main import app  # noqa: E402
from storyhub.models import Base, User, get_sessionmaker  # noqa: E402
from storyhub.reassembly import ReassemblyController  # noqa: E402
from storyhub.storage import MediaStorage, get_media_storage  # noqa: E402
from storyhub.story_service import StoryService  # noqa: E402
from storyhub.transactions import RetryConfig  # noqa: E402

FAST_RETRY = RetryConfig(max_retries=8, initial_delay=0.01, max_delay=0.2)

# A throwaway PostgreSQL database for the row-lock tests; its tables are dropped and recreated.
POSTGRES_URL = os.getenv('STORYHUB_TEST_POSTGRES_URL')


class FakeMediaStorage:
    """Records deletions instead of talking to S3."""

    def __init__(self):
        self.deleted = []
        self.fail = False

    async def delete_url(self, url):
        if self.fail:
            raise StorageCleanupError(url, 'simulated S3 outage')
        self.deleted.append(url)
        return True

    async def presign_upload(self, user_id, file_type, expires_in=3600):
        key = MediaStorage.build_key(user_id, file_type)
        return {'upload_url': f'https://upload.test/{key}', 'object_url': f'https://media.test/{key}', 'key': key}


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A fresh file-backed SQLite database per test, so concurrent sessions really are separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storyhub.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def pg_session_factory():
    if not POSTGRES_URL:
        pytest.skip('STORYHUB_TEST_POSTGRES_URL is not set')
    url = POSTGRES_URL.replace('postgresql://', 'postgresql+asyncpg://', 1)
    engine = create_async_engine(url, pool_size=10)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    except (OSError, SQLAlchemyError, asyncio.TimeoutError) as e:
        await engine.dispose()
        pytest.skip(f'PostgreSQL is not reachable: {e}')
    yield async_sessionmaker(engine, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def make_user(session_factory, username, role='student'):
    async with session_factory() as session:
        async with session.begin():
            user = User(username=username, role=role, display_name=username.title())
            session.add(user)
        return user.id


@pytest_asyncio.fixture
async def student_id(session_factory):
    return await make_user(session_factory, 'asha')


@pytest_asyncio.fixture
async def other_student_id(session_factory):
    return await make_user(session_factory, 'ben')


@pytest_asyncio.fixture
async def parent_id(session_factory):
    return await make_user(session_factory, 'carol', role='parent')


@pytest_asyncio.fixture
async def pg_owner_id(pg_session_factory):
    return await make_user(pg_session_factory, 'asha')


@pytest_asyncio.fixture
async def therapist_id(session_factory):
    return await make_user(session_factory, 'dana', role='therapist')


@pytest.fixture
def controller(session_factory):
    return ReassemblyController(session_factory, FAST_RETRY)


@pytest.fixture
def service(session_factory):
    return StoryService(session_factory, FAST_RETRY)


@pytest.fixture
def media_storage():
    return FakeMediaStorage()


@pytest_asyncio.fixture
async def client(session_factory, media_storage):
    app.dependency_overrides[get_sessionmaker] = lambda: session_factory
    app.dependency_overrides[get_media_storage] = lambda: media_storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def make(user_id):
        return {'Authorization': f'Bearer {create_access_token({"id": user_id})}'}
    return make
