"""Conversion between HTTP header collections and work item attributes."""

import codecs
import re
from collections.abc import Iterable, Mapping

from invokehttp.constants import IGNORED_ATTRIBUTES


def join_values(values: list[str]) -> str:
    """Join header values into a comma separated string.

    A single value is returned untouched. Multiple values are trimmed and
    blanks dropped; values containing commas are not quoted.

    Args:
        values: Header values in arrival order.

    Returns:
        Comma separated string.
    """
    if not values:
        return ""
    if len(values) == 1:
        return values[0]
    return ", ".join(value.strip() for value in values if value.strip())


def headers_to_attributes(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Convert response headers to attributes.

    Repeated headers are matched case-insensitively and stored once under the
    first spelling seen, with their values joined by :func:`join_values`.

    Args:
        headers: Header name/value pairs.

    Returns:
        Attribute mapping.
    """
    names: dict[str, str] = {}
    grouped: dict[str, list[str]] = {}
    for name, value in headers:
        lowered = name.lower()
        names.setdefault(lowered, name)
        grouped.setdefault(lowered, []).append(value)
    return {names[key]: join_values(values) for key, values in grouped.items()}


def attributes_to_headers(
    attributes: Mapping[str, str],
    pattern: re.Pattern[str] | None,
) -> list[tuple[str, str]]:
    """Select attributes to send as request headers.

    An attribute is sent when its trimmed key is not an ignored bookkeeping
    key and fully matches the pattern. Without a pattern nothing is sent.

    Args:
        attributes: Work item attributes.
        pattern: Attributes-to-send pattern.

    Returns:
        Header name/value pairs with trimmed values.
    """
    if pattern is None:
        return []

    headers: list[tuple[str, str]] = []
    for key, value in attributes.items():
        header_key = key.strip()
        if header_key in IGNORED_ATTRIBUTES:
            continue
        if pattern.fullmatch(header_key):
            headers.append((header_key, value.strip()))
    return headers


_CHARSET = re.compile(r";\s*charset\s*=\s*\"?([^\";\s]+)\"?", re.IGNORECASE)


def charset_from_content_type(content_type: str | None, default: str = "utf-8") -> str:
    """Get the charset parameter of a Content-Type value.

    Args:
        content_type: Content-Type header value, or None.
        default: Charset used when none is declared or it is unknown.

    Returns:
        A codec name usable with bytes.decode.
    """
    if not content_type:
        return default
    match = _CHARSET.search(content_type)
    if match is None:
        return default
    try:
        return codecs.lookup(match.group(1)).name
    except LookupError:
        return default
