"""Data models for the invokehttp pipeline."""

import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Protocol

from invokehttp.constants import DEFAULT_CHUNK_SIZE, UUID_ATTRIBUTE


class Relationship(str, Enum):
    """Named destinations a work item can be transferred to."""

    ORIGINAL = "Original"
    RESPONSE = "Response"
    RETRY = "Retry"
    NO_RETRY = "NoRetry"
    FAILURE = "Failure"


class Outcome(str, Enum):
    """Classification of a completed exchange.

    - SUCCESS: 2xx status
    - RETRY: 5xx status, the request may succeed later
    - NO_RETRY: 1xx, 3xx and 4xx status
    - FAILURE: the exchange raised before a status was obtained
    """

    SUCCESS = "SUCCESS"
    RETRY = "RETRY"
    NO_RETRY = "NO_RETRY"
    FAILURE = "FAILURE"


class ByteSource(Protocol):
    """Readable, closable byte stream."""

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes; an empty result signals end of stream."""
        ...

    def close(self) -> None:
        """Release the stream."""
        ...


@dataclass(frozen=True)
class WorkItem:
    """One unit of data flowing through the pipeline.

    Work items are immutable. Every mutation returns a new instance carrying
    the same item_id, so holders of an older version never observe changes.

    Attributes:
        item_id: Stable identifier shared by all versions of the item.
        attributes: Read-only attribute mapping.
        content: Payload bytes.
        penalized: Whether the item carries a cooldown hint.
    """

    item_id: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    content: bytes = b""
    penalized: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "attributes", MappingProxyType(dict(self.attributes))
        )

    @classmethod
    def create(
        cls,
        attributes: Mapping[str, str] | None = None,
        content: bytes = b"",
    ) -> "WorkItem":
        """Create a new work item with a fresh identifier.

        Args:
            attributes: Initial attributes.
            content: Initial payload.

        Returns:
            New work item whose uuid attribute matches its item_id.
        """
        item_id = str(uuid.uuid4())
        merged = dict(attributes or {})
        merged[UUID_ATTRIBUTE] = item_id
        return cls(item_id=item_id, attributes=merged, content=content)

    def child(self) -> "WorkItem":
        """Create a derived item inheriting this item's attributes."""
        inherited = {k: v for k, v in self.attributes.items() if k != UUID_ATTRIBUTE}
        return WorkItem.create(inherited)

    @property
    def size(self) -> int:
        """Payload length in bytes."""
        return len(self.content)

    def with_attributes(self, updates: Mapping[str, str]) -> "WorkItem":
        """Return a copy with the given attributes added or overwritten."""
        merged = dict(self.attributes)
        merged.update(updates)
        return replace(self, attributes=merged)

    def with_content(self, content: bytes) -> "WorkItem":
        """Return a copy carrying a new payload."""
        return replace(self, content=content)

    def with_penalty(self) -> "WorkItem":
        """Return a penalized copy."""
        return replace(self, penalized=True)


@dataclass(frozen=True)
class RequestBody:
    """Outbound request body descriptor.

    Attributes:
        content_type: Media type sent in the Content-Type header.
        content: Body bytes.
        chunked: If True the length is declared unknown and the body is sent
            with chunked transfer encoding.
    """

    content_type: str | None
    content: bytes = b""
    chunked: bool = False

    @property
    def length(self) -> int | None:
        """Declared length, or None when unknown."""
        return None if self.chunked else len(self.content)

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the body in fixed-size chunks."""
        for offset in range(0, len(self.content), chunk_size):
            yield self.content[offset : offset + chunk_size]


@dataclass(frozen=True)
class RequestSpec:
    """Fully assembled outbound request.

    Headers are an ordered list of pairs; names may repeat.
    """

    method: str
    url: str
    headers: tuple[tuple[str, str], ...] = ()
    body: RequestBody | None = None

    def header_values(self, name: str) -> list[str]:
        """Return every value sent for a header name (case-insensitive)."""
        lowered = name.lower()
        return [value for key, value in self.headers if key.lower() == lowered]


@dataclass
class ExchangeResult:
    """Result of executing a request.

    The body stream is owned by the Response Capturer and is closed exactly
    once when the exchange scope ends.
    """

    status_code: int
    status_message: str
    url: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: ByteSource | None = None
    content_type: str | None = None
    peer_dn: str | None = None
    elapsed_ms: float = 0.0
    from_cache: bool = False

    @property
    def is_success(self) -> bool:
        """Check if the status is in the 2xx class."""
        return self.status_code // 100 == 2
