"""
Tests for the in-memory review session registry.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

from services import session_cache_service
from services.session_cache_service import (
    store_session,
    retrieve_session,
    delete_session,
    open_session_count,
)


def _clock():
    return patch.object(session_cache_service, "datetime")


class TestSessionRegistry:

    def test_store_and_retrieve(self):
        session = object()

        assert store_session("s1", session) == "s1"
        assert retrieve_session("s1") is session

    def test_unknown_session(self):
        assert retrieve_session("missing") is None

    def test_delete(self):
        store_session("s1", object())

        assert delete_session("s1") is True
        assert delete_session("s1") is False
        assert retrieve_session("s1") is None

    def test_expired_session_is_dropped(self):
        store_session("s1", object(), ttl_minutes=1)

        with _clock() as mock_datetime:
            mock_datetime.now.return_value = datetime.now() + timedelta(minutes=2)
            assert retrieve_session("s1") is None

        assert "s1" not in session_cache_service._sessions

    def test_store_refreshes_expiry(self):
        session = object()
        store_session("s1", session, ttl_minutes=1)
        store_session("s1", session, ttl_minutes=10)

        with _clock() as mock_datetime:
            mock_datetime.now.return_value = datetime.now() + timedelta(minutes=2)
            assert retrieve_session("s1") is session

    def test_activity_extends_expiry(self):
        """
        Expiry counts from the last use, not from creation.

        Arrange: 10 minute session
        Act: read it at minute 8, then again at minute 16
        Assert: still open at 16, gone at 27
        """
        session = object()
        start = datetime.now()
        store_session("s1", session, ttl_minutes=10)

        for minutes, expected in [(8, session), (16, session), (27, None)]:
            with _clock() as mock_datetime:
                mock_datetime.now.return_value = start + timedelta(minutes=minutes)
                assert retrieve_session("s1") is expected

    def test_open_session_count_skips_expired(self):
        store_session("short", object(), ttl_minutes=1)
        store_session("long", object(), ttl_minutes=60)

        with _clock() as mock_datetime:
            mock_datetime.now.return_value = datetime.now() + timedelta(minutes=5)
            assert open_session_count() == 1
