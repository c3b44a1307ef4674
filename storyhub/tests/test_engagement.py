from datetime import datetime, timedelta, timezone

import pytest

from storyhub import crud
from storyhub.story_service import time_ago


async def publish(client, headers, content='A finished tale.'):
    res = await client.post('/api/stories/', json={'content': content}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()['data']['id']


class TestComments:

    @pytest.mark.asyncio
    async def test_add_and_list_comments(self, client, auth_headers, student_id, other_student_id, parent_id):
        story_id = await publish(client, auth_headers(student_id))

        first = await client.post(
            f'/api/stories/{story_id}/comments', json={'comment': 'Loved the dragon!'},
            headers=auth_headers(other_student_id),
        )
        assert first.status_code == 201, first.text
        body = first.json()
        assert body['message'] == 'Comment added successfully'
        assert body['data']['authorName'] == 'ben'
        assert body['data']['timeAgo'] == 'just now'

        await client.post(
            f'/api/stories/{story_id}/comments', json={'comment': 'Thanks!'}, headers=auth_headers(student_id),
        )

        listed = await client.get(f'/api/stories/{story_id}/comments', headers=auth_headers(parent_id))
        assert listed.status_code == 200
        assert [c['content'] for c in listed.json()] == ['Loved the dragon!', 'Thanks!']
        assert [c['authorName'] for c in listed.json()] == ['ben', 'asha']

    @pytest.mark.asyncio
    async def test_comment_rules(self, client, auth_headers, student_id, other_student_id, parent_id):
        story_id = await publish(client, auth_headers(student_id))

        parent = await client.post(
            f'/api/stories/{story_id}/comments', json={'comment': 'Nice'}, headers=auth_headers(parent_id),
        )
        assert parent.status_code == 403

        empty = await client.post(
            f'/api/stories/{story_id}/comments', json={'comment': ''}, headers=auth_headers(other_student_id),
        )
        assert empty.status_code == 400

        blank = await client.post(
            f'/api/stories/{story_id}/comments', json={'comment': '   '}, headers=auth_headers(other_student_id),
        )
        assert blank.status_code == 400

        missing = await client.post(
            '/api/stories/no-such-story/comments', json={'comment': 'Hi'}, headers=auth_headers(other_student_id),
        )
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_drafts_cannot_be_commented_or_read(self, client, auth_headers, student_id, other_student_id):
        draft = await client.post(
            '/api/stories/',
            json={'isChunk': True, 'chunkIndex': 0, 'totalChunks': 2, 'content': 'half'},
            headers=auth_headers(student_id),
        )
        story_id = draft.json()['storyId']

        comment = await client.post(
            f'/api/stories/{story_id}/comments', json={'comment': 'Early!'}, headers=auth_headers(other_student_id),
        )
        assert comment.status_code == 404
        listed = await client.get(f'/api/stories/{story_id}/comments', headers=auth_headers(other_student_id))
        assert listed.status_code == 404
        like = await client.post(f'/api/stories/{story_id}/like', headers=auth_headers(other_student_id))
        assert like.status_code == 404


class TestLikes:

    @pytest.mark.asyncio
    async def test_toggle_like(self, client, auth_headers, student_id, parent_id):
        story_id = await publish(client, auth_headers(student_id))

        liked = await client.post(f'/api/stories/{story_id}/like', headers=auth_headers(parent_id))
        assert liked.status_code == 200
        assert liked.json() == {'liked': True, 'likeCount': 1, 'status': True}

        also = await client.post(f'/api/stories/{story_id}/like', headers=auth_headers(student_id))
        assert also.json()['likeCount'] == 2

        unliked = await client.post(f'/api/stories/{story_id}/like', headers=auth_headers(parent_id))
        assert unliked.json() == {'liked': False, 'likeCount': 1, 'status': True}

    @pytest.mark.asyncio
    async def test_therapists_cannot_like(self, client, auth_headers, student_id, therapist_id):
        story_id = await publish(client, auth_headers(student_id))
        res = await client.post(f'/api/stories/{story_id}/like', headers=auth_headers(therapist_id))
        assert res.status_code == 403


class TestEngagementInFeed:

    @pytest.mark.asyncio
    async def test_feed_and_story_carry_counts(self, client, auth_headers, student_id, other_student_id, parent_id):
        quiet = await publish(client, auth_headers(student_id), 'Nobody noticed this one.')
        popular = await publish(client, auth_headers(student_id), 'Everybody loved this one.')
        await client.post(f'/api/stories/{popular}/like', headers=auth_headers(parent_id))
        await client.post(f'/api/stories/{popular}/like', headers=auth_headers(other_student_id))
        await client.post(
            f'/api/stories/{popular}/comments', json={'comment': 'Wow'}, headers=auth_headers(other_student_id),
        )

        feed = await client.get('/api/stories/', headers=auth_headers(parent_id))
        items = {s['id']: s for s in feed.json()['data']}
        assert (items[popular]['commentCount'], items[popular]['likeCount']) == (1, 2)
        assert (items[quiet]['commentCount'], items[quiet]['likeCount']) == (0, 0)
        assert items[popular]['timeAgo'] == 'just now'

        one = await client.get(f'/api/stories/{popular}', headers=auth_headers(parent_id))
        assert (one.json()['commentCount'], one.json()['likeCount']) == (1, 2)

        mine = await client.get('/api/stories/me', headers=auth_headers(student_id))
        assert sorted(s['likeCount'] for s in mine.json()) == [0, 2]

    @pytest.mark.asyncio
    async def test_delete_removes_comments_and_likes(self, client, auth_headers, session_factory, student_id,
                                                     other_student_id):
        story_id = await publish(client, auth_headers(student_id))
        await client.post(f'/api/stories/{story_id}/like', headers=auth_headers(other_student_id))
        await client.post(
            f'/api/stories/{story_id}/comments', json={'comment': 'Bye'}, headers=auth_headers(other_student_id),
        )

        assert (await client.delete(f'/api/stories/{story_id}', headers=auth_headers(student_id))).status_code == 200
        async with session_factory() as session:
            assert await crud.list_comments(session, story_id) == []
            assert await crud.count_likes(session, story_id) == 0


NOW = datetime(2026, 10, 20, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize('delta, expected', [
    (timedelta(seconds=5), 'just now'),
    (timedelta(seconds=-60), 'just now'),
    (timedelta(seconds=45), '45 seconds ago'),
    (timedelta(minutes=1), '1 minute ago'),
    (timedelta(hours=3), '3 hours ago'),
    (timedelta(days=8), '1 week ago'),
    (timedelta(days=400), '1 year ago'),
])
def test_time_ago(delta, expected):
    assert time_ago(NOW - delta, now=NOW) == expected


def test_time_ago_treats_naive_timestamps_as_utc():
    assert time_ago(datetime(2026, 10, 20, 10, 0), now=NOW) == '2 hours ago'
    assert time_ago(None) is None
