"""Opportunistic ETag response cache built on hishel.

Caching decisions follow RFC 9111 through ``hishel.Controller``: responses
marked ``no-store`` or ``private`` are never stored, and every stored
response is revalidated with ``If-None-Match`` before reuse. A 304 answer is
served from the stored representation. Storage lives in a process-local
directory and is pruned oldest-first to stay under a byte-size cap.
"""

import tempfile
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import hishel
import httpx
import structlog


if TYPE_CHECKING:
    import httpcore


logger = structlog.get_logger()

CACHEABLE_METHODS = ["GET"]
CACHEABLE_STATUS_CODES = [200]


@dataclass
class CacheStatistics:
    """Counters mirroring the request, network and hit counts of the cache."""

    request_count: int = 0
    network_count: int = 0
    hit_count: int = 0


class BoundedFileStorage(hishel.FileStorage):
    """hishel file storage holding at most ``max_size_bytes`` of bodies.

    Bodies larger than the cap are never stored. When the total exceeds the
    cap the oldest entries are removed first.
    """

    def __init__(self, base_path: Path, max_size_bytes: int) -> None:
        """Initialize the storage.

        Args:
            base_path: Directory owned by this storage.
            max_size_bytes: Maximum total size of stored bodies.
        """
        super().__init__(base_path=base_path)
        self._directory = base_path
        self._max_size_bytes = max_size_bytes
        self._sizes: OrderedDict[str, int] = OrderedDict()
        self._index_lock = threading.Lock()
        self._log = logger.bind(component="cache")

    @property
    def directory(self) -> Path:
        """Cache directory."""
        return self._directory

    def keys(self) -> list[str]:
        """Keys of the stored entries, oldest first."""
        with self._index_lock:
            return list(self._sizes)

    def store(
        self,
        key: str,
        response: "httpcore.Response",
        request: "httpcore.Request",
        metadata: object = None,
    ) -> None:
        size = len(response.content)
        if size > self._max_size_bytes:
            self._log.debug("cache_store_skipped", key=key, size=size)
            return

        super().store(key, response, request, metadata)  # type: ignore[arg-type]

        with self._index_lock:
            self._sizes[key] = size
            self._sizes.move_to_end(key)
            evicted: list[str] = []
            total = sum(self._sizes.values())
            while total > self._max_size_bytes and len(self._sizes) > 1:
                oldest, oldest_size = self._sizes.popitem(last=False)
                total -= oldest_size
                evicted.append(oldest)

        for oldest in evicted:
            self.remove(oldest)
            self._log.debug("cache_entry_evicted", key=oldest)


class _NetworkCounter(httpx.BaseTransport):
    """Counts exchanges that reach the network."""

    def __init__(self, transport: httpx.BaseTransport, recorder: "_Recorder") -> None:
        self._transport = transport
        self._recorder = recorder

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        self._recorder.network()
        return self._transport.handle_request(request)

    def close(self) -> None:
        self._transport.close()


class _Recorder:
    """Lock-guarded CacheStatistics."""

    def __init__(self) -> None:
        self._stats = CacheStatistics()
        self._lock = threading.Lock()

    def request(self, hit: bool) -> None:
        with self._lock:
            self._stats.request_count += 1
            if hit:
                self._stats.hit_count += 1

    def network(self) -> None:
        with self._lock:
            self._stats.network_count += 1

    def snapshot(self) -> CacheStatistics:
        with self._lock:
            return CacheStatistics(
                request_count=self._stats.request_count,
                network_count=self._stats.network_count,
                hit_count=self._stats.hit_count,
            )


class ETagCacheTransport(httpx.BaseTransport):
    """hishel cache transport that also keeps request, network and hit counts.

    A response served from storage, including one confirmed by a 304, carries
    ``extensions["from_cache"] = True``.
    """

    def __init__(
        self,
        transport: httpx.BaseTransport,
        storage: BoundedFileStorage,
    ) -> None:
        """Initialize the cache transport.

        Args:
            transport: Transport performing the network exchange.
            storage: Storage for cached responses.
        """
        self._storage = storage
        self._recorder = _Recorder()
        controller = hishel.Controller(
            cacheable_methods=CACHEABLE_METHODS,
            cacheable_status_codes=CACHEABLE_STATUS_CODES,
            cache_private=False,
            allow_heuristics=True,
            always_revalidate=True,
        )
        self._cache = hishel.CacheTransport(
            transport=_NetworkCounter(transport, self._recorder),
            storage=storage,
            controller=controller,
        )
        self._log = logger.bind(component="cache")

    @property
    def storage(self) -> BoundedFileStorage:
        """Backing storage."""
        return self._storage

    def statistics(self) -> CacheStatistics:
        """Snapshot of the cache counters."""
        return self._recorder.snapshot()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        response = self._cache.handle_request(request)
        hit = bool(response.extensions.get("from_cache", False))
        self._recorder.request(hit)
        if hit:
            self._log.debug(
                "cache_hit",
                url=str(request.url),
                revalidated=bool(response.extensions.get("revalidated", False)),
            )
        return response

    def close(self) -> None:
        self._cache.close()


def create_cache_dir() -> Path:
    """Create a fresh process-local cache directory."""
    return Path(tempfile.mkdtemp(prefix="invokehttp-etag-"))
