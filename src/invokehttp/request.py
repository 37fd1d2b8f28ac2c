"""Request Assembler: builds one outbound request from a work item."""

from email.utils import formatdate

import structlog

from invokehttp.config.schemas import AuthConfig, RequestConfig
from invokehttp.constants import BODY_METHODS, DEFAULT_CONTENT_TYPE, EXCLUDED_HEADERS
from invokehttp.expression import evaluate
from invokehttp.headers import attributes_to_headers
from invokehttp.models import RequestBody, RequestSpec, WorkItem
from invokehttp.transport.auth import basic_authorization_header


logger = structlog.get_logger()


def http_date(timestamp: float | None = None) -> str:
    """Format a timestamp as an RFC 1123 date in GMT.

    Args:
        timestamp: POSIX timestamp; now if omitted.

    Returns:
        Date such as ``Sun, 06 Nov 1994 08:49:37 GMT``.
    """
    return formatdate(timestamp, usegmt=True)


class RequestAssembler:
    """Builds RequestSpec instances from configuration and work items."""

    def __init__(self, config: RequestConfig, auth: AuthConfig) -> None:
        """Initialize the assembler.

        Args:
            config: Per-item request configuration.
            auth: Credentials; only used for the pre-emptive Basic header.
        """
        self._config = config
        self._pattern = config.attributes_pattern
        self._basic_header = basic_authorization_header(auth)
        self._log = logger.bind(component="request")

    def resolve_method(self, item: WorkItem | None) -> str:
        """Evaluate and uppercase the configured method."""
        attributes = item.attributes if item is not None else {}
        return (evaluate(self._config.method, attributes) or "").strip().upper()

    def resolve_url(self, item: WorkItem | None) -> str:
        """Evaluate the configured URL."""
        attributes = item.attributes if item is not None else {}
        return (evaluate(self._config.url, attributes) or "").strip()

    def assemble(self, item: WorkItem | None) -> RequestSpec:
        """Build the request for a work item.

        Args:
            item: Work item, or None for a source-style exchange.

        Returns:
            Immutable request specification.
        """
        method = self.resolve_method(item)
        url = self.resolve_url(item)

        headers: list[tuple[str, str]] = []
        if self._basic_header is not None:
            headers.append(("Authorization", self._basic_header))

        body: RequestBody | None = None
        if method in BODY_METHODS:
            body = self._build_body(item)

        headers.extend(self._build_headers(item))

        return RequestSpec(method=method, url=url, headers=tuple(headers), body=body)

    def _build_body(self, item: WorkItem | None) -> RequestBody:
        if not self._config.send_body or item is None:
            return RequestBody(content_type=None, content=b"")

        attributes = item.attributes
        content_type = (evaluate(self._config.content_type, attributes) or "").strip()
        return RequestBody(
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            content=item.content,
            chunked=self._config.use_chunked_encoding,
        )

    def _build_headers(self, item: WorkItem | None) -> list[tuple[str, str]]:
        headers: list[tuple[str, str]] = []

        if self._config.include_date_header:
            headers.append(("Date", http_date()))

        attributes = item.attributes if item is not None else {}
        for header_name, expression in self._config.dynamic_headers.items():
            if header_name in EXCLUDED_HEADERS:
                self._log.warning(
                    "header_excluded",
                    header=header_name,
                    reason=EXCLUDED_HEADERS[header_name].format(header=header_name),
                )
                continue
            headers.append((header_name, evaluate(expression, attributes) or ""))

        if item is not None:
            headers.extend(attributes_to_headers(item.attributes, self._pattern))

        return headers
