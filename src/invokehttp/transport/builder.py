"""Transport Builder: assembles a reusable httpx client from configuration.

A TransportHandle is immutable once built. Reconfiguration builds a complete
new handle and swaps it in atomically; a failed build leaves the current
handle untouched.
"""

import shutil
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from invokehttp.config.schemas import TransportConfig
from invokehttp.constants import PROXY_TYPE_HTTPS
from invokehttp.transport.auth import Authenticator, select_authenticator
from invokehttp.transport.cache import (
    BoundedFileStorage,
    CacheStatistics,
    ETagCacheTransport,
    create_cache_dir,
)
from invokehttp.transport.tls import create_ssl_context


logger = structlog.get_logger()


@dataclass(frozen=True)
class TransportHandle:
    """Immutable client handle shared by concurrent exchanges.

    Attributes:
        client: Configured httpx client.
        config: Configuration the handle was built from.
        authenticator: Selected authenticator variant.
        cache: ETag cache transport, if caching is enabled.
    """

    client: httpx.Client
    config: TransportConfig
    authenticator: Authenticator
    cache: ETagCacheTransport | None = None

    @property
    def cache_dir(self) -> Path | None:
        """Directory of the response cache, if enabled."""
        return self.cache.storage.directory if self.cache is not None else None

    def cache_statistics(self) -> CacheStatistics | None:
        """Current cache counters, if caching is enabled."""
        return self.cache.statistics() if self.cache is not None else None

    def close(self) -> None:
        """Close the client and remove the cache directory."""
        self.client.close()
        cache_dir = self.cache_dir
        if cache_dir is not None:
            shutil.rmtree(cache_dir, ignore_errors=True)


class TransportBuilder:
    """Builds TransportHandle instances from a TransportConfig."""

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        """Initialize the builder.

        Args:
            transport: Network transport to use instead of an
                httpx.HTTPTransport, primarily for tests.
        """
        self._transport = transport

    def build(self, config: TransportConfig) -> TransportHandle:
        """Build a client handle.

        Args:
            config: Transport configuration.

        Returns:
            New immutable handle.

        Raises:
            ConfigurationError: If TLS material is unusable.
        """
        log = logger.bind(component="transport")

        # TLS material is loaded first; the HTTPS proxy needs it too.
        ssl_context = create_ssl_context(config.tls)

        proxy: httpx.Proxy | None = None
        if config.proxy is not None:
            proxy = httpx.Proxy(
                config.proxy.url,
                auth=(
                    (config.proxy.username or "", config.proxy.password or "")
                    if config.proxy.has_credentials
                    else None
                ),
                ssl_context=(
                    ssl_context if config.proxy.type == PROXY_TYPE_HTTPS else None
                ),
            )

        transport: httpx.BaseTransport = self._transport or httpx.HTTPTransport(
            verify=ssl_context, proxy=proxy
        )

        cache: ETagCacheTransport | None = None
        cache_dir: Path | None = None
        try:
            if config.cache.enabled:
                cache_dir = create_cache_dir()
                storage = BoundedFileStorage(cache_dir, config.cache.max_size_bytes)
                cache = ETagCacheTransport(transport, storage)
                transport = cache

            authenticator = select_authenticator(config.auth)

            client = httpx.Client(
                transport=transport,
                timeout=httpx.Timeout(
                    config.read_timeout_seconds,
                    connect=config.connect_timeout_seconds,
                ),
                follow_redirects=config.follow_redirects,
                auth=authenticator.to_httpx_auth(),
                trust_env=False,
            )
        except Exception:
            if cache_dir is not None:
                shutil.rmtree(cache_dir, ignore_errors=True)
            raise

        log.info(
            "transport_built",
            authenticator=type(authenticator).__name__,
            proxy=config.proxy.url if config.proxy else None,
            cache_enabled=config.cache.enabled,
            follow_redirects=config.follow_redirects,
            connect_timeout_seconds=config.connect_timeout_seconds,
            read_timeout_seconds=config.read_timeout_seconds,
        )
        return TransportHandle(
            client=client,
            config=config,
            authenticator=authenticator,
            cache=cache,
        )


class TransportHolder:
    """Atomically swapped reference to the current TransportHandle.

    Exchanges hold a lease on the handle they started with. A handle replaced
    by ``rebuild`` or ``clear`` is closed once its last lease is released, so
    an in-flight exchange finishes on the client it began with.
    """

    def __init__(self, builder: TransportBuilder | None = None) -> None:
        self._builder = builder or TransportBuilder()
        self._handle: TransportHandle | None = None
        self._lock = threading.Lock()
        self._leases: dict[int, int] = {}
        self._retired: dict[int, TransportHandle] = {}

    def current(self) -> TransportHandle | None:
        """Get the current handle, or None before the first build."""
        return self._handle

    @contextmanager
    def lease(self) -> Iterator[TransportHandle | None]:
        """Hold the current handle open for the duration of an exchange.

        Yields:
            The current handle, or None before the first build.
        """
        with self._lock:
            handle = self._handle
            if handle is not None:
                self._leases[id(handle)] = self._leases.get(id(handle), 0) + 1
        try:
            yield handle
        finally:
            if handle is not None:
                self._release(handle)

    def rebuild(self, config: TransportConfig) -> TransportHandle:
        """Build a new handle and swap it in.

        The previous handle is closed after the swap, or when its last lease
        is released.

        Args:
            config: Transport configuration.

        Returns:
            The new current handle.

        Raises:
            ConfigurationError: If the build fails; the current handle is
                left in place.
        """
        handle = self._builder.build(config)
        self._swap(handle)
        return handle

    def clear(self) -> None:
        """Drop and close the current handle."""
        self._swap(None)

    def _swap(self, handle: TransportHandle | None) -> None:
        with self._lock:
            previous, self._handle = self._handle, handle
            if previous is not None and self._leases.get(id(previous)):
                self._retired[id(previous)] = previous
                logger.debug(
                    "transport_close_deferred",
                    component="transport",
                    leases=self._leases[id(previous)],
                )
                previous = None
        if previous is not None:
            previous.close()

    def _release(self, handle: TransportHandle) -> None:
        retired: TransportHandle | None = None
        with self._lock:
            remaining = self._leases[id(handle)] - 1
            if remaining:
                self._leases[id(handle)] = remaining
            else:
                del self._leases[id(handle)]
                retired = self._retired.pop(id(handle), None)
        if retired is not None:
            retired.close()
