"""Response Capturer: executes requests and delivers bodies to up to two sinks.

The body of a response may be needed by the full-fidelity output (the
response work item) and by a bounded side buffer that populates an attribute.
Both are served from a single read of the underlying stream through a tee;
the bounded buffer silently truncates at its capacity.
"""

import ssl
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import BinaryIO

import httpx
import structlog

from invokehttp.constants import DEFAULT_CHUNK_SIZE
from invokehttp.errors import ProtocolError, TransportError, TransportErrorClass
from invokehttp.models import ByteSource, ExchangeResult, RequestBody, RequestSpec
from invokehttp.transport.builder import TransportHandle


logger = structlog.get_logger()

# Short names used when rendering a certificate subject as a DN
_DN_KEYS = {
    "commonName": "CN",
    "organizationName": "O",
    "organizationalUnitName": "OU",
    "countryName": "C",
    "stateOrProvinceName": "ST",
    "localityName": "L",
    "emailAddress": "EMAILADDRESS",
    "domainComponent": "DC",
}


class BoundedBuffer:
    """Length-capped byte sink.

    Writes beyond the capacity are accepted and discarded, never raising.
    """

    def __init__(self, capacity: int) -> None:
        self._capacity = max(capacity, 0)
        self._buffer = bytearray()

    @property
    def capacity(self) -> int:
        """Maximum number of bytes retained."""
        return self._capacity

    @property
    def remaining(self) -> int:
        """Bytes that can still be retained."""
        return self._capacity - len(self._buffer)

    @property
    def is_full(self) -> bool:
        """Check if the capacity has been reached."""
        return self.remaining <= 0

    def write(self, data: bytes) -> int:
        """Retain as much of data as fits.

        Args:
            data: Bytes to write.

        Returns:
            len(data); truncated bytes count as consumed.
        """
        if not self.is_full:
            self._buffer.extend(data[: self.remaining])
        return len(data)

    def getvalue(self) -> bytes:
        """Get the retained bytes."""
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)


class TeeReader:
    """Fan-out reader copying every read into a bounded sink.

    When the reader owns its source, closing the tee closes the source, once.
    """

    def __init__(
        self, source: ByteSource, sink: BoundedBuffer, owns_source: bool = True
    ) -> None:
        self._source = source
        self._sink = sink
        self._owns_source = owns_source
        self._closed = False

    @property
    def owns_source(self) -> bool:
        """Whether closing the tee also closes the source."""
        return self._owns_source

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        chunk = self._source.read(size)
        if chunk:
            self._sink.write(chunk)
        return chunk

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_source:
            self._source.close()


class ResponseBodyStream:
    """Readable view over a streaming httpx response.

    Transport faults raised while reading are surfaced as TransportError.
    Closing releases the response exactly once.
    """

    def __init__(self, response: httpx.Response, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._response = response
        self._chunks: Iterator[bytes] = response.iter_bytes(chunk_size)
        self._pending = b""
        self._exhausted = False
        self._closed = False
        self.bytes_read = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes, or everything left when size is negative."""
        if self._closed:
            return b""
        while not self._exhausted and (size < 0 or len(self._pending) < size):
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                break
            except (httpx.TransportError, OSError) as exc:
                raise translate_transport_error(exc) from exc
            self._pending += chunk

        if size < 0:
            data, self._pending = self._pending, b""
        else:
            data, self._pending = self._pending[:size], self._pending[size:]
        self.bytes_read += len(data)
        return data

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._response.close()


class _ChunkedContent:
    """Replayable chunk iterable; httpx sends it with chunked encoding."""

    def __init__(self, body: RequestBody, chunk_size: int) -> None:
        self._body = body
        self._chunk_size = chunk_size

    def __iter__(self) -> Iterator[bytes]:
        return self._body.iter_chunks(self._chunk_size)


def translate_transport_error(exc: Exception) -> TransportError:
    """Classify an httpx or socket failure.

    Args:
        exc: Exception raised by the transport.

    Returns:
        TransportError carrying the classification and message.
    """
    message = str(exc) or type(exc).__name__
    if isinstance(exc, httpx.ProxyError):
        error_class = TransportErrorClass.PROXY_ERROR
    elif isinstance(exc, httpx.TimeoutException | TimeoutError):
        error_class = TransportErrorClass.NETWORK_TIMEOUT
    elif _caused_by_ssl(exc):
        error_class = TransportErrorClass.SSL_ERROR
    elif isinstance(exc, httpx.ConnectError | ConnectionError):
        error_class = TransportErrorClass.CONNECTION_ERROR
    else:
        error_class = TransportErrorClass.UNKNOWN
    return TransportError(error_class, message)


def _caused_by_ssl(exc: BaseException) -> bool:
    seen: BaseException | None = exc
    while seen is not None:
        if isinstance(seen, ssl.SSLError | ssl.CertificateError):
            return True
        seen = seen.__cause__ or seen.__context__
    return False


def peer_distinguished_name(response: httpx.Response) -> str | None:
    """Get the server certificate subject of a TLS exchange.

    Args:
        response: Streaming response.

    Returns:
        Subject in RFC 2253 order (``CN=...,O=...``), or None for plain HTTP,
        cached answers, or when no certificate was presented.
    """
    if response.url.scheme != "https":
        return None
    stream = response.extensions.get("network_stream")
    if stream is None:
        return None
    ssl_object = stream.get_extra_info("ssl_object")
    if ssl_object is None:
        return None
    certificate = ssl_object.getpeercert()
    if not certificate or "subject" not in certificate:
        return None

    parts = [
        f"{_DN_KEYS.get(key, key)}={value}"
        for rdn in reversed(certificate["subject"])
        for key, value in rdn
    ]
    return ",".join(parts) or None


class ResponseCapturer:
    """Executes a RequestSpec on a transport handle and captures the result."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._chunk_size = chunk_size
        self._log = logger.bind(component="capture")

    def build_request(self, client: httpx.Client, spec: RequestSpec) -> httpx.Request:
        """Translate a RequestSpec into an httpx request.

        Args:
            client: Client the request will be sent with.
            spec: Assembled request.

        Returns:
            httpx request with headers in the assembled order.
        """
        headers = list(spec.headers)
        content: bytes | Iterable[bytes] | None = None
        if spec.body is not None:
            if spec.body.content_type is not None:
                headers.append(("Content-Type", spec.body.content_type))
            if spec.body.chunked:
                content = _ChunkedContent(spec.body, self._chunk_size)
            else:
                content = spec.body.content
                if not content:
                    headers.append(("Content-Length", "0"))
        return client.build_request(
            spec.method, spec.url, headers=headers, content=content
        )

    @contextmanager
    def execute(
        self, handle: TransportHandle, spec: RequestSpec
    ) -> Iterator[ExchangeResult]:
        """Execute a request, scoping its response body to the block.

        The body stream of the yielded result is closed when the block exits,
        on every path.

        Args:
            handle: Transport handle.
            spec: Assembled request.

        Yields:
            ExchangeResult with an open body stream.

        Raises:
            TransportError: On connection, TLS, proxy, timeout or I/O failure.
            ProtocolError: If no status code was obtained.
        """
        request = self.build_request(handle.client, spec)
        start_ns = time.perf_counter_ns()
        try:
            response = handle.client.send(request, stream=True)
        except (httpx.TransportError, OSError) as exc:
            raise translate_transport_error(exc) from exc

        body = ResponseBodyStream(response, self._chunk_size)
        try:
            if not response.status_code:
                raise ProtocolError()

            elapsed_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            yield ExchangeResult(
                status_code=response.status_code,
                status_message=response.reason_phrase,
                url=str(response.url),
                headers=[
                    (
                        name.decode(response.headers.encoding),
                        value.decode(response.headers.encoding),
                    )
                    for name, value in response.headers.raw
                ],
                body=body,
                content_type=response.headers.get("content-type"),
                peer_dn=peer_distinguished_name(response),
                elapsed_ms=elapsed_ms,
                from_cache=bool(response.extensions.get("from_cache", False)),
            )
        finally:
            body.close()

    def drain(
        self,
        result: ExchangeResult,
        content_sink: BinaryIO | None,
        attribute_capacity: int | None,
    ) -> bytes | None:
        """Deliver the response body to the requested consumers.

        With both consumers the body is read once through a TeeReader. With
        only the bounded consumer, at most attribute_capacity bytes are read.

        Args:
            result: Exchange whose body is drained.
            content_sink: Full-fidelity output, or None.
            attribute_capacity: Bounded capture size, or None for no capture.

        Returns:
            Captured bytes (at most attribute_capacity), or None when no
            capture was requested.
        """
        source = result.body
        if source is None:
            return b"" if attribute_capacity is not None else None

        tee: TeeReader | None = None
        try:
            if content_sink is not None and attribute_capacity is not None:
                buffer = BoundedBuffer(attribute_capacity)
                tee = TeeReader(source, buffer)
                self._copy(tee, content_sink)
                return buffer.getvalue()

            if attribute_capacity is not None:
                buffer = BoundedBuffer(attribute_capacity)
                while not buffer.is_full:
                    chunk = source.read(min(buffer.remaining, self._chunk_size))
                    if not chunk:
                        break
                    buffer.write(chunk)
                return buffer.getvalue()

            if content_sink is not None:
                self._copy(source, content_sink)
            return None
        finally:
            if tee is not None:
                tee.close()
            if tee is None or not tee.owns_source:
                source.close()

    def _copy(self, source: ByteSource, sink: BinaryIO) -> None:
        while True:
            chunk = source.read(self._chunk_size)
            if not chunk:
                break
            sink.write(chunk)
