import pytest
from botocore.exceptions import ClientError

from storyhub.errors import StorageCleanupError, ValidationError
from storyhub.storage import MediaStorage, cleanup_media

BUCKET_URL = 'https://story-media.s3.eu-west-1.amazonaws.com/'


class _FakeS3:
    def __init__(self, error=None):
        self.error = error
        self.deleted = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def delete_object(self, Bucket, Key):
        if self.error is not None:
            raise self.error
        self.deleted.append((Bucket, Key))


@pytest.fixture
def storage():
    return MediaStorage(bucket='story-media', region='eu-west-1', access_key_id='k', secret_access_key='s')


def test_key_from_url(storage):
    assert storage.key_from_url(BUCKET_URL + 'stories/1/image-abc.png') == 'stories/1/image-abc.png'
    assert storage.key_from_url('https://elsewhere.example/x.png') is None
    assert storage.key_from_url(BUCKET_URL) is None
    assert storage.key_from_url('') is None


def test_build_key_accepts_images_and_audio():
    assert MediaStorage.build_key(7, 'image/jpeg').startswith('stories/7/image-')
    assert MediaStorage.build_key(7, 'audio/mpeg').endswith('.mpeg')
    for bad in ('text/plain', 'image', '', None):
        with pytest.raises(ValidationError):
            MediaStorage.build_key(7, bad)


@pytest.mark.asyncio
async def test_delete_url_removes_bucket_objects(storage, monkeypatch):
    s3 = _FakeS3()
    monkeypatch.setattr(storage, '_client', lambda: s3)

    assert await storage.delete_url(BUCKET_URL + 'stories/1/audio-1.mp3') is True
    assert await storage.delete_url('https://elsewhere.example/x.png') is False
    assert s3.deleted == [('story-media', 'stories/1/audio-1.mp3')]


@pytest.mark.asyncio
async def test_delete_url_wraps_s3_failures(storage, monkeypatch):
    error = ClientError({'Error': {'Code': 'AccessDenied', 'Message': 'denied'}}, 'DeleteObject')
    monkeypatch.setattr(storage, '_client', lambda: _FakeS3(error))

    with pytest.raises(StorageCleanupError) as exc:
        await storage.delete_url(BUCKET_URL + 'stories/1/image-1.png')
    assert exc.value.url == BUCKET_URL + 'stories/1/image-1.png'


@pytest.mark.asyncio
async def test_cleanup_media_keeps_going_after_failures(storage, monkeypatch):
    calls = []

    async def flaky_delete(url):
        calls.append(url)
        if url.endswith('bad.png'):
            raise StorageCleanupError(url, 'timeout')
        return True

    monkeypatch.setattr(storage, 'delete_url', flaky_delete)
    await cleanup_media(storage, [BUCKET_URL + 'bad.png', BUCKET_URL + 'good.mp3'])
    assert calls == [BUCKET_URL + 'bad.png', BUCKET_URL + 'good.mp3']
