"""Tests for GET /home."""

import pytest

from src.api.routes.home import parse_limit


class TestParseLimit:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, 50), ("10", 10), ("abc", 50), ("0", 50), ("-3", 50), ("2.5", 50)],
    )
    def test_parse_limit(self, value, expected):
        assert parse_limit(value, 50) == expected


class TestHomeRoute:
    """Tests for the home feed endpoint."""

    def test_default_limit(self, client, mock_archive):
        resp = client.get("/home")

        assert resp.status_code == 200
        mock_archive.latest.assert_awaited_once_with(50)
        data = resp.json()
        assert len(data["tweets"]) == 1
        assert len(data["messages"]) == 1

    def test_explicit_limit(self, client, mock_archive):
        client.get("/home", params={"limit": "5"})
        mock_archive.latest.assert_awaited_once_with(5)

    def test_invalid_limit_uses_default(self, client, mock_archive):
        resp = client.get("/home", params={"limit": "lots"})

        assert resp.status_code == 200
        mock_archive.latest.assert_awaited_once_with(50)

    def test_cache_keyed_by_resolved_limit(self, client, mock_redis, response_cache):
        client.get("/home", params={"limit": "0"})

        key = mock_redis.setex.await_args.args[0]
        assert key == response_cache.make_key("home", "50")

    def test_failure_returns_500(self, client, mock_archive):
        mock_archive.latest.side_effect = RuntimeError("pool closed")

        resp = client.get("/home")

        assert resp.status_code == 500
        assert resp.json() == {
            "tweets": [],
            "messages": [],
            "error": "Failed to load latest items",
        }
