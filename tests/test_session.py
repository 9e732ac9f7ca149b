from datetime import datetime, timedelta

from datekelly.api.session import SIGNED_IN, SIGNED_OUT, Session, SessionStore


def test_from_auth_response():
    session = Session.from_auth_response({
        'access_token': 'jwt',
        'refresh_token': 'refresh',
        'expires_in': 3600,
        'user': {'id': 'u1', 'email': 'a@b.c', 'user_metadata': {'role': 'club'}},
    })
    assert session.user_id == 'u1'
    assert session.role == 'club'
    assert not session.is_expired


def test_expired_session():
    session = Session(user_id='u1', expires_at=datetime.now() - timedelta(seconds=1))
    assert session.is_expired


def test_subscribe_and_unsubscribe():
    store = SessionStore()
    events = []
    unsubscribe = store.subscribe(lambda event, session: events.append((event, session and session.user_id)))

    store.set(Session(user_id='u1'))
    store.clear()
    unsubscribe()
    store.set(Session(user_id='u2'))

    assert events == [(SIGNED_IN, 'u1'), (SIGNED_OUT, None)]
    assert store.subscriber_count == 0
    assert store.current.user_id == 'u2'


def test_failing_subscriber_does_not_break_others():
    store = SessionStore()
    seen = []

    def broken(event, session):
        raise RuntimeError('listener bug')

    store.subscribe(broken)
    store.subscribe(lambda event, session: seen.append(event))
    store.set(Session(user_id='u1'))

    assert seen == [SIGNED_IN]
