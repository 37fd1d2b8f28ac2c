"""Unit tests for the hishel-backed ETag response cache."""

from pathlib import Path

import httpx
import pytest
from structlog.testing import capture_logs

from invokehttp.transport.cache import BoundedFileStorage, ETagCacheTransport


class EtagServer:
    """Mock endpoint honouring If-None-Match, one ETag per host."""

    def __init__(
        self,
        body: bytes = b"cached body",
        etag: str = '"v1"',
        cache_control: str | None = None,
    ) -> None:
        self.body = body
        self.etag = etag
        self.cache_control = cache_control
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        etag = f'"{request.url.host}"' if self.etag == "host" else self.etag
        if request.headers.get("If-None-Match") == etag:
            return httpx.Response(304, headers={"ETag": etag})
        headers = {"ETag": etag, "Content-Type": "text/plain"}
        if self.cache_control is not None:
            headers["Cache-Control"] = self.cache_control
        return httpx.Response(200, headers=headers, content=self.body)


def _client(
    server: EtagServer, cache_dir: Path, max_size: int = 1024
) -> tuple[httpx.Client, ETagCacheTransport]:
    transport = ETagCacheTransport(
        httpx.MockTransport(server), BoundedFileStorage(cache_dir, max_size)
    )
    return httpx.Client(transport=transport), transport


@pytest.mark.unit
class TestETagCacheTransport:
    """Tests for conditional revalidation."""

    def test_revalidated_response_served_from_cache(self, tmp_path: Path) -> None:
        """Test that a 304 is replaced by the stored 200."""
        server = EtagServer()
        client, transport = _client(server, tmp_path)

        with capture_logs() as logs:
            first = client.get("http://example.com/r")
            second = client.get("http://example.com/r")

        assert first.content == b"cached body"
        assert not first.extensions.get("from_cache")
        assert second.status_code == 200
        assert second.content == b"cached body"
        assert second.extensions["from_cache"] is True
        assert second.headers["Content-Type"] == "text/plain"
        assert server.requests[1].headers["If-None-Match"] == '"v1"'
        assert [log["event"] for log in logs].count("cache_hit") == 1

        stats = transport.statistics()
        assert stats.request_count == 2
        assert stats.network_count == 2
        assert stats.hit_count == 1
        client.close()

    @pytest.mark.parametrize(
        "cache_control", ["no-store", "private", "no-store, private"]
    )
    def test_uncacheable_response_not_stored(
        self, tmp_path: Path, cache_control: str
    ) -> None:
        """Test that no-store and private responses are never revalidated."""
        server = EtagServer(cache_control=cache_control)
        client, transport = _client(server, tmp_path)

        client.get("http://example.com/r")
        second = client.get("http://example.com/r")

        assert "If-None-Match" not in server.requests[1].headers
        assert not second.extensions.get("from_cache")
        assert transport.storage.keys() == []
        assert transport.statistics().hit_count == 0
        client.close()

    def test_oversized_body_not_cached(self, tmp_path: Path) -> None:
        """Test that bodies above the size cap are never stored."""
        server = EtagServer(body=b"x" * 2048)
        client, transport = _client(server, tmp_path, max_size=1024)

        client.get("http://example.com/r")
        client.get("http://example.com/r")

        assert "If-None-Match" not in server.requests[1].headers
        assert transport.storage.keys() == []
        client.close()

    @pytest.mark.parametrize("method", ["POST", "PUT"])
    def test_only_get_is_cached(self, tmp_path: Path, method: str) -> None:
        """Test that other methods bypass the cache."""
        server = EtagServer()
        client, transport = _client(server, tmp_path)

        client.request(method, "http://example.com/r", content=b"a")
        client.request(method, "http://example.com/r", content=b"a")

        assert "If-None-Match" not in server.requests[1].headers
        assert transport.storage.keys() == []
        assert transport.statistics().hit_count == 0
        client.close()


@pytest.mark.unit
class TestBoundedFileStorage:
    """Tests for the size-bounded storage."""

    def test_evicts_oldest_entries(self, tmp_path: Path) -> None:
        """Test that the cap is enforced oldest-first."""
        server = EtagServer(body=b"z" * 400, etag="host")
        client, transport = _client(server, tmp_path, max_size=600)

        client.get("http://a.example/")
        client.get("http://b.example/")

        assert len(transport.storage.keys()) == 1

        client.get("http://b.example/")
        client.get("http://a.example/")

        assert server.requests[2].headers["If-None-Match"] == '"b.example"'
        assert "If-None-Match" not in server.requests[3].headers
        client.close()

    def test_directory(self, tmp_path: Path) -> None:
        """Test that the storage reports the directory it writes to."""
        storage = BoundedFileStorage(tmp_path, 10)

        assert storage.directory == tmp_path
        assert storage.keys() == []
