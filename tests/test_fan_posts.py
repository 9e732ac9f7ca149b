from datetime import datetime, timezone

import pytest

from datekelly.api.client import DataServiceError, QueryResult
from datekelly.errors import AuthenticationRequired, InsufficientCreditsError, ServiceError, ValidationError
from datekelly.models.fan_post import FanPostStatus
from datekelly.services.fan_posts import MEDIA_BUCKET, FanPostService, format_relative_date
from datekelly.utils.batch import BatchError


@pytest.fixture
def fan_posts(service, outbox):
    return FanPostService(service, outbox=outbox)


@pytest.fixture
def feed(service):
    service.seed('profiles', {'user_id': 'author-1', 'name': 'Anna', 'image_url': 'anna.jpg'})
    service.seed(
        'fan_posts',
        {'id': 'p1', 'author_id': 'author-1', 'status': 'published', 'content': 'Old',
         'created_at': '2026-01-01T10:00:00+00:00'},
        {'id': 'p2', 'author_id': 'author-1', 'status': 'published', 'content': 'New',
         'is_premium': True, 'credits_cost': 10, 'likes_count': 3, 'comments_count': 1,
         'created_at': '2026-01-02T10:00:00+00:00'},
        {'id': 'p3', 'author_id': 'author-1', 'status': 'deleted', 'content': 'Gone',
         'created_at': '2026-01-03T10:00:00+00:00'},
        {'id': 'p4', 'author_id': 'ghost', 'status': 'published', 'content': 'Who',
         'created_at': '2025-12-31T10:00:00+00:00'},
    )
    service.seed(
        'fan_post_media',
        {'post_id': 'p2', 'media_type': 'image', 'file_url': 'second.jpg', 'display_order': 1},
        {'post_id': 'p2', 'media_type': 'video', 'file_url': 'clip.mp4', 'display_order': 2},
        {'post_id': 'p2', 'media_type': 'image', 'file_url': 'first.jpg', 'display_order': 0},
    )
    service.seed('fan_post_likes', {'post_id': 'p2', 'user_id': 'user-1'})
    return service


class TestFeed:
    def test_requires_session(self, fan_posts):
        with pytest.raises(AuthenticationRequired):
            fan_posts.get_all_fan_posts(None)

    def test_published_posts_newest_first(self, fan_posts, feed, session):
        posts = fan_posts.get_all_fan_posts(session)

        assert [p.id for p in posts] == ['p2', 'p1', 'p4']
        newest = posts[0]
        assert newest.author_name == 'Anna'
        assert newest.image_urls == ['first.jpg', 'second.jpg']
        assert newest.video_urls == ['clip.mp4']
        assert newest.content_amount == {'photos': 2, 'videos': 1}
        assert newest.unlock_price == 10
        assert newest.likes == 3
        assert newest.is_liked
        assert not posts[1].is_liked
        assert posts[2].author_name == 'Anonymous'

    def test_missing_profiles_do_not_fail_feed(self, fan_posts, feed, session):
        feed.fail('profiles')
        posts = fan_posts.get_all_fan_posts(session)
        assert {p.author_name for p in posts} == {'Anonymous'}

    def test_feed_error(self, fan_posts, feed, session):
        feed.fail('fan_posts')
        with pytest.raises(ServiceError, match='Failed to load fan posts.'):
            fan_posts.get_all_fan_posts(session)

    def test_by_author(self, fan_posts, feed):
        assert [p.id for p in fan_posts.get_fan_posts_by_author('author-1')] == ['p2', 'p1']


class TestCreate:
    def test_text_post(self, fan_posts, service, session):
        post = fan_posts.create_fan_post(session, '  Hello fans  ', theme='beach', is_premium=False, credits_cost=50)

        assert post.content == 'Hello fans'
        assert post.author_id == 'user-1'
        assert post.unlock_price == 0
        assert post.status is FanPostStatus.PUBLISHED

    def test_premium_post_with_media(self, fan_posts, service, outbox, session, make_image):
        files = [
            (make_image(1600, 1600), 'a.jpg', 'image/jpeg'),
            (b'not really a video', 'b.mp4', 'video/mp4'),
        ]
        post = fan_posts.create_fan_post(session, 'Exclusive', is_premium=True, credits_cost=25, media_files=files)

        assert post.unlock_price == 25
        assert len(post.image_urls) == 1 and len(post.video_urls) == 1
        paths = service.storage.paths(MEDIA_BUCKET)
        assert len(paths) == 2 and all(p.startswith(f'{post.id}/') for p in paths)
        assert [m['display_order'] for m in service.rows('fan_post_media')] in ([0, 1], [1, 0])

        assert outbox.flush(timeout=5)
        assert [m['url'] for m in service.rows('media_items')] == post.image_urls

    def test_created_post_built_without_reloading_author_posts(self, fan_posts, service, session, make_image):
        service.seed('profiles', {'user_id': 'user-1', 'name': 'Me', 'image_url': 'me.jpg'})
        service.seed('fan_posts', *[
            {'id': f'old-{i}', 'author_id': 'user-1', 'status': 'published'} for i in range(3)
        ])
        service.executed.clear()

        post = fan_posts.create_fan_post(
            session, 'Fresh', media_files=[(make_image(900, 900), 'a.jpg', 'image/jpeg')]
        )

        assert post.author_name == 'Me'
        assert post.author_image == 'me.jpg'
        assert len(post.image_urls) == 1
        reads = [(q.table, q.action) for q in service.executed if q.action == 'select']
        assert reads == [('profiles', 'select')]

    def test_media_failure_removes_post(self, fan_posts, service, session, make_image):
        service.storage.fail_when = lambda bucket, path, content: path.endswith('-1.jpg')
        files = [(make_image(900, 900), f'{i}.jpg', 'image/jpeg') for i in range(3)]

        with pytest.raises(ServiceError, match='Failed to upload 1.jpg') as exc:
            fan_posts.create_fan_post(session, 'With photos', media_files=files)

        assert isinstance(exc.value, BatchError)
        assert service.rows('fan_posts') == []
        assert service.rows('fan_post_media') == []

    def test_empty_post_rejected(self, fan_posts, service, session):
        with pytest.raises(ValidationError):
            fan_posts.create_fan_post(session, '   ')
        assert service.rows('fan_posts') == []


class TestInteractions:
    def test_toggle_like(self, fan_posts, service, session):
        assert fan_posts.toggle_like(session, 'p1') is True
        assert len(service.rows('fan_post_likes')) == 1
        assert fan_posts.toggle_like(session, 'p1') is False
        assert service.rows('fan_post_likes') == []

    def test_add_comment_mirrors_for_moderation(self, fan_posts, service, outbox, session):
        comment = fan_posts.add_comment(session, 'p1', '  Lovely  ')

        assert comment.content == 'Lovely'
        assert outbox.flush(timeout=5)
        mirrored = service.rows('comments')[0]
        assert mirrored['content_type'] == 'fan_post'
        assert mirrored['content_id'] == 'p1'
        assert mirrored['comment'] == 'Lovely'
        assert mirrored['moderation_status'] == 'pending'

    def test_mirror_failure_does_not_fail_comment(self, fan_posts, service, outbox, session):
        service.fail('comments')
        comment = fan_posts.add_comment(session, 'p1', 'Still here')

        assert comment.content == 'Still here'
        assert outbox.flush(timeout=5)
        assert outbox.failures == 1
        assert len(service.rows('fan_post_comments')) == 1

    def test_empty_comment(self, fan_posts, session):
        with pytest.raises(ValidationError):
            fan_posts.add_comment(session, 'p1', ' ')

    def test_get_comments_oldest_first(self, fan_posts, service):
        service.seed(
            'fan_post_comments',
            {'post_id': 'p1', 'content': 'second', 'created_at': '2026-01-02T00:00:00+00:00',
             'profiles': {'name': 'Bob', 'image_url': 'bob.jpg'}},
            {'post_id': 'p1', 'content': 'first', 'created_at': '2026-01-01T00:00:00+00:00', 'profiles': None},
        )
        comments = fan_posts.get_comments('p1')

        assert [c.content for c in comments] == ['first', 'second']
        assert comments[0].author_name == 'Anonymous'
        assert comments[1].author_name == 'Bob'

    def test_soft_delete_only_own_posts(self, fan_posts, feed, session):
        feed.seed('fan_posts', {'id': 'mine', 'author_id': 'user-1', 'status': 'published'})

        fan_posts.delete_fan_post(session, 'mine')
        fan_posts.delete_fan_post(session, 'p1')

        statuses = {row['id']: row['status'] for row in feed.rows('fan_posts')}
        assert statuses['mine'] == 'deleted'
        assert statuses['p1'] == 'published'


class TestCredits:
    def test_insufficient_credits(self, fan_posts, feed, session):
        feed.seed('users', {'id': 'user-1', 'credits': 5})
        with pytest.raises(InsufficientCreditsError):
            fan_posts.unlock_fan_post(session, 'p2')
        assert feed.rpc_calls == []
        assert feed.rows('fan_post_unlocks') == []

    def test_unlock(self, fan_posts, feed, session):
        feed.seed('users', {'id': 'user-1', 'credits': 30})

        assert fan_posts.unlock_fan_post(session, 'p2') == 10

        name, params = feed.rpc_calls[0]
        assert name == 'process_client_credit_transaction'
        assert params['amount_param'] == -10
        assert params['reference_id_param'] == 'p2'
        unlock = feed.rows('fan_post_unlocks')[0]
        assert (unlock['client_id'], unlock['fan_post_id'], unlock['credits_spent']) == ('user-1', 'p2', 10)

    def test_failed_transaction_records_no_unlock(self, fan_posts, feed, session):
        feed.seed('users', {'id': 'user-1', 'credits': 30})
        feed.rpc_handlers['process_client_credit_transaction'] = lambda params: QueryResult(
            error=DataServiceError('insufficient balance', status_code=400)
        )
        with pytest.raises(ServiceError):
            fan_posts.unlock_fan_post(session, 'p2')
        assert feed.rows('fan_post_unlocks') == []

    def test_earnings(self, fan_posts, service):
        service.rpc_handlers['get_lady_fan_earnings'] = lambda params: [{
            'id': 'e1',
            'client_name': None,
            'credits_spent': '15',
            'fan_post_id': 'p2',
            'fan_post_title': 'Beach day',
            'created_at': '2026-03-04T18:30:00+00:00',
        }]
        earnings = fan_posts.get_fan_earnings('author-1')

        assert service.rpc_calls[0] == ('get_lady_fan_earnings', {'p_lady_id': 'author-1', 'p_limit': 500})
        assert earnings == [{
            'id': 'e1',
            'type': 'unlock',
            'fan': {'name': 'Anonymous', 'image_url': ''},
            'amount': 15.0,
            'description': 'Unlocked your fan post: Beach day',
            'date': '2026-03-04',
            'time': '18:30',
            'fan_post_id': 'p2',
            'fan_post_title': 'Beach day',
        }]


@pytest.mark.parametrize('created, expected', [
    ('2026-10-14T12:00:00+00:00', '3 days ago'),
    ('2026-10-16T12:00:00+00:00', '1 day ago'),
    ('2026-10-17T10:00:00Z', '2 hours ago'),
    ('2026-10-17T11:59:00+00:00', '1 minute ago'),
    ('2026-10-17T11:59:30+00:00', 'Just now'),
])
def test_format_relative_date(created, expected):
    now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
    assert format_relative_date(created, now) == expected
