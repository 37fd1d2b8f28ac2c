"""Unit tests for the header/attribute mapper."""

import re

import pytest

from invokehttp.headers import (
    attributes_to_headers,
    charset_from_content_type,
    headers_to_attributes,
    join_values,
)


class TestJoinValues:
    """Tests for joining repeated header values."""

    def test_single_value_untouched(self) -> None:
        """Test that a lone value keeps its whitespace."""
        assert join_values([" a "]) == " a "

    def test_multiple_values_trimmed_and_joined(self) -> None:
        """Test that blanks are dropped and values trimmed."""
        assert join_values([" a", "", "b ", "c,d"]) == "a, b, c,d"

    def test_no_values(self) -> None:
        """Test that an empty list yields an empty string."""
        assert join_values([]) == ""


class TestHeadersToAttributes:
    """Tests for response header conversion."""

    def test_groups_case_insensitively(self) -> None:
        """Test that repeated names collapse under the first spelling."""
        result = headers_to_attributes(
            [
                ("Set-Cookie", "a=1"),
                ("Content-Type", "text/plain"),
                ("set-cookie", "b=2"),
            ]
        )

        assert result == {"Set-Cookie": "a=1, b=2", "Content-Type": "text/plain"}


class TestAttributesToHeaders:
    """Tests for selecting attributes to send as headers."""

    def test_regex_selects_matching_attributes(self) -> None:
        """Test that only fully matching keys become headers."""
        headers = attributes_to_headers(
            {"X-Trace": " abc ", "uuid": "123", "Other": "no"},
            re.compile(r"^X-.*$"),
        )

        assert headers == [("X-Trace", "abc")]

    def test_ignored_attributes_never_sent(self) -> None:
        """Test that bookkeeping keys are skipped even when they match."""
        headers = attributes_to_headers(
            {
                "uuid": "123",
                "filename": "a.txt",
                "path": "./",
                "invokehttp.status.code": "200",
                " uuid ": "456",
            },
            re.compile(r".*"),
        )

        assert headers == []

    def test_no_pattern_sends_nothing(self) -> None:
        """Test that without a pattern no attribute is sent."""
        assert attributes_to_headers({"X-Trace": "abc"}, None) == []

    def test_partial_match_is_not_enough(self) -> None:
        """Test that the pattern must match the whole key."""
        headers = attributes_to_headers({"X-Trace-Id": "1"}, re.compile("X-Trace"))

        assert headers == []


class TestCharsetFromContentType:
    """Tests for charset extraction."""

    @pytest.mark.parametrize(
        ("content_type", "expected"),
        [
            (None, "utf-8"),
            ("text/plain", "utf-8"),
            ("text/plain; charset=ISO-8859-1", "iso8859-1"),
            ('text/html; charset="utf-16"', "utf-16"),
            ("text/plain; charset=no-such-charset", "utf-8"),
        ],
    )
    def test_charset(self, content_type: str | None, expected: str) -> None:
        """Test charset resolution with a UTF-8 fallback."""
        assert charset_from_content_type(content_type) == expected
