"""Metrics collection for HTTP exchanges."""

from dataclasses import dataclass, field
from typing import ClassVar

from invokehttp.models import Relationship


@dataclass
class InvokeHttpMetrics:
    """Metrics for invokehttp exchanges.

    Singleton class that tracks request counts by status, transfers by
    relationship, failures by error class, cache hits and timing.
    """

    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_cache_hits_total: int = 0
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_bytes_total: int = 0
    http_duration_ms_total: float = 0.0
    http_request_count: int = 0
    transfers_total: dict[str, int] = field(default_factory=dict)

    _instance: ClassVar["InvokeHttpMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "InvokeHttpMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_request(self, status_code: int, bytes_received: int) -> None:
        """Record a completed exchange.

        Args:
            status_code: HTTP status code.
            bytes_received: Number of body bytes read.
        """
        self.http_requests_total[status_code] = (
            self.http_requests_total.get(status_code, 0) + 1
        )
        self.http_bytes_total += bytes_received
        self.http_request_count += 1

    def record_cache_hit(self) -> None:
        """Record a response served from the ETag cache."""
        self.http_cache_hits_total += 1

    def record_failure(self, error_class: str) -> None:
        """Record an exchange routed to Failure.

        Args:
            error_class: Name of the exception class.
        """
        self.http_failures_total[error_class] = (
            self.http_failures_total.get(error_class, 0) + 1
        )

    def record_transfer(self, relationship: Relationship) -> None:
        """Record a work item transfer."""
        key = relationship.value
        self.transfers_total[key] = self.transfers_total.get(key, 0) + 1

    def record_duration(self, duration_ms: float) -> None:
        """Record exchange duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.http_duration_ms_total += duration_ms

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_requests_total": dict(self.http_requests_total),
            "http_cache_hits_total": self.http_cache_hits_total,
            "http_failures_total": dict(self.http_failures_total),
            "http_bytes_total": self.http_bytes_total,
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_request_count": self.http_request_count,
            "http_duration_ms_avg": self.avg_duration_ms,
            "transfers_total": dict(self.transfers_total),
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average exchange duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.http_request_count == 0:
            return 0.0
        return self.http_duration_ms_total / self.http_request_count
