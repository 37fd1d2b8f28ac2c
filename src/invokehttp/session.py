"""Session and scheduling seams consumed by the processor.

The processor never mutates work items in place. It asks the session for new
versions (attributes, content, penalty) and hands the final version to a
relationship. ``InMemorySession`` is a complete implementation used by the
command line and by tests.
"""

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from invokehttp.models import Relationship, WorkItem


class ProvenanceEventType(str, Enum):
    """Kinds of lineage events reported during an exchange.

    - SEND: the item's payload was transmitted as the request body
    - FETCH: a response body was imported for an incoming item
    - RECEIVE: a response body was imported with no incoming item
    - ATTRIBUTES_MODIFIED: the response body was written to an attribute
    """

    SEND = "SEND"
    FETCH = "FETCH"
    RECEIVE = "RECEIVE"
    ATTRIBUTES_MODIFIED = "ATTRIBUTES_MODIFIED"


@dataclass(frozen=True)
class ProvenanceEvent:
    """One lineage event."""

    event_type: ProvenanceEventType
    item_id: str
    url: str | None = None
    details: str | None = None
    elapsed_ms: float | None = None


class ProcessSession(Protocol):
    """Work item operations available to one trigger."""

    def get(self) -> WorkItem | None:
        """Take the next incoming item, or None."""
        ...

    def create(self) -> WorkItem:
        """Create a fresh item."""
        ...

    def create_child(self, parent: WorkItem) -> WorkItem:
        """Create an item inheriting the parent's attributes."""
        ...

    def put_attributes(self, item: WorkItem, attributes: Mapping[str, str]) -> WorkItem:
        """Return a new version of item with attributes added."""
        ...

    def import_from(self, item: WorkItem, content: bytes) -> WorkItem:
        """Return a new version of item carrying content."""
        ...

    def penalize(self, item: WorkItem) -> WorkItem:
        """Return a penalized version of item."""
        ...

    def transfer(self, item: WorkItem, relationship: Relationship) -> None:
        """Hand item to a relationship."""
        ...

    def remove(self, item: WorkItem) -> None:
        """Discard item."""
        ...

    def report(self, event: ProvenanceEvent) -> None:
        """Record a provenance event."""
        ...


class SchedulingContext(Protocol):
    """View of the scheduler driving the processor."""

    @property
    def has_incoming_connection(self) -> bool:
        """Whether upstream components can deliver items."""
        ...

    def request_yield(self) -> None:
        """Ask the scheduler to pause briefly before the next trigger."""
        ...


@dataclass
class InMemoryContext:
    """Scheduling context that records yield requests."""

    has_incoming_connection: bool = False
    yield_requested: bool = False

    def request_yield(self) -> None:
        self.yield_requested = True


@dataclass
class InMemorySession:
    """Session backed by in-process collections.

    Items are tracked by id; each operation replaces the tracked version.
    Transferring or removing an item that is not live raises ValueError, so
    an item can reach at most one relationship.
    """

    incoming: deque[WorkItem] = field(default_factory=deque)
    transfers: list[tuple[Relationship, WorkItem]] = field(default_factory=list)
    removed: list[WorkItem] = field(default_factory=list)
    events: list[ProvenanceEvent] = field(default_factory=list)
    _live: dict[str, WorkItem] = field(default_factory=dict)

    @classmethod
    def with_items(cls, items: Iterable[WorkItem]) -> "InMemorySession":
        """Create a session whose queue holds the given items."""
        return cls(incoming=deque(items))

    def get(self) -> WorkItem | None:
        if not self.incoming:
            return None
        item = self.incoming.popleft()
        self._live[item.item_id] = item
        return item

    def create(self) -> WorkItem:
        return self._track(WorkItem.create())

    def create_child(self, parent: WorkItem) -> WorkItem:
        self._require_live(parent)
        return self._track(parent.child())

    def put_attributes(self, item: WorkItem, attributes: Mapping[str, str]) -> WorkItem:
        self._require_live(item)
        return self._track(item.with_attributes(attributes))

    def import_from(self, item: WorkItem, content: bytes) -> WorkItem:
        self._require_live(item)
        return self._track(item.with_content(content))

    def penalize(self, item: WorkItem) -> WorkItem:
        self._require_live(item)
        return self._track(item.with_penalty())

    def transfer(self, item: WorkItem, relationship: Relationship) -> None:
        self._require_live(item)
        del self._live[item.item_id]
        self.transfers.append((relationship, item))

    def remove(self, item: WorkItem) -> None:
        self._require_live(item)
        del self._live[item.item_id]
        self.removed.append(item)

    def report(self, event: ProvenanceEvent) -> None:
        self.events.append(event)

    def transferred(self, relationship: Relationship) -> list[WorkItem]:
        """Get the items transferred to a relationship, in order."""
        return [item for rel, item in self.transfers if rel == relationship]

    def events_of(self, event_type: ProvenanceEventType) -> list[ProvenanceEvent]:
        """Get the recorded events of one type."""
        return [event for event in self.events if event.event_type == event_type]

    @property
    def unaccounted(self) -> list[WorkItem]:
        """Items neither transferred nor removed."""
        return list(self._live.values())

    def _track(self, item: WorkItem) -> WorkItem:
        self._live[item.item_id] = item
        return item

    def _require_live(self, item: WorkItem) -> None:
        if item.item_id not in self._live:
            raise ValueError(f"Work item {item.item_id} is not held by this session")
