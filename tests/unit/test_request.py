"""Unit tests for the request assembler."""

import base64
from email.utils import parsedate_to_datetime

from structlog.testing import capture_logs

from invokehttp.config.schemas import AuthConfig, RequestConfig
from invokehttp.expression import evaluate
from invokehttp.models import WorkItem
from invokehttp.request import RequestAssembler, http_date


def _assembler(auth: AuthConfig | None = None, **overrides: object) -> RequestAssembler:
    config = RequestConfig.model_validate(
        {"url": "http://example.com/api", **overrides}
    )
    return RequestAssembler(config, auth or AuthConfig())


class TestEvaluate:
    """Tests for attribute expressions."""

    def test_placeholders_are_replaced(self) -> None:
        """Test that ${name} resolves against attributes."""
        assert evaluate("http://h/${ id }/x", {"id": "42"}) == "http://h/42/x"

    def test_missing_attribute_is_empty(self) -> None:
        """Test that unknown attributes evaluate to an empty string."""
        assert evaluate("${nope}", {}) == ""

    def test_none_expression(self) -> None:
        """Test that None stays None."""
        assert evaluate(None, {"a": "b"}) is None


class TestMethodAndUrl:
    """Tests for method and URL resolution."""

    def test_method_is_evaluated_and_uppercased(self) -> None:
        """Test that the method expression is resolved per item."""
        assembler = _assembler(method="${verb}", include_date_header=False)
        item = WorkItem.create({"verb": "delete"})

        spec = assembler.assemble(item)

        assert spec.method == "DELETE"
        assert spec.body is None

    def test_custom_method_has_no_body(self) -> None:
        """Test that tokens outside POST/PUT/PATCH carry no body."""
        spec = _assembler(method="PROPFIND").assemble(WorkItem.create(content=b"x"))

        assert spec.method == "PROPFIND"
        assert spec.body is None

    def test_url_is_evaluated(self) -> None:
        """Test that the URL expression is resolved per item."""
        assembler = RequestAssembler(
            RequestConfig(url="http://example.com/items/${id}"), AuthConfig()
        )

        assert assembler.assemble(WorkItem.create({"id": "7"})).url == (
            "http://example.com/items/7"
        )


class TestBody:
    """Tests for request body construction."""

    def test_post_sends_payload_with_mime_type(self) -> None:
        """Test that the payload is sent with the item's mime.type."""
        item = WorkItem.create({"mime.type": "text/csv"}, b"a,b")

        spec = _assembler(method="POST").assemble(item)

        assert spec.body is not None
        assert spec.body.content == b"a,b"
        assert spec.body.content_type == "text/csv"
        assert spec.body.length == 3

    def test_blank_content_type_falls_back(self) -> None:
        """Test that a blank content type becomes application/octet-stream."""
        spec = _assembler(method="PUT").assemble(WorkItem.create(content=b"abc"))

        assert spec.body is not None
        assert spec.body.content_type == "application/octet-stream"

    def test_chunked_body_has_unknown_length(self) -> None:
        """Test that chunked transfer declares no length."""
        spec = _assembler(method="PATCH", use_chunked_encoding=True).assemble(
            WorkItem.create(content=b"x" * 10)
        )

        assert spec.body is not None
        assert spec.body.length is None
        assert b"".join(spec.body.iter_chunks(4)) == b"x" * 10

    def test_send_body_disabled_sends_empty_body(self) -> None:
        """Test that disabling send_body yields a zero-length body."""
        spec = _assembler(method="POST", send_body=False).assemble(
            WorkItem.create(content=b"payload")
        )

        assert spec.body is not None
        assert spec.body.content == b""
        assert spec.body.content_type is None


class TestHeaders:
    """Tests for header assembly."""

    def test_basic_header_injected(self) -> None:
        """Test that a configured username yields a Basic header."""
        spec = _assembler(AuthConfig(username="user", password="pass")).assemble(None)

        expected = "Basic " + base64.b64encode(b"user:pass").decode()
        assert spec.header_values("Authorization") == [expected]

    def test_no_basic_header_with_digest(self) -> None:
        """Test that Digest suppresses the pre-emptive Basic header."""
        auth = AuthConfig(username="user", password="pass", use_digest=True)

        assert _assembler(auth).assemble(None).header_values("Authorization") == []

    def test_basic_header_kept_with_ntlm(self) -> None:
        """Test that NTLM does not suppress the Basic header."""
        auth = AuthConfig(
            username="user", password="pass", ntlm_domain="CORP", use_ntlm=True
        )

        assert len(_assembler(auth).assemble(None).header_values("Authorization")) == 1

    def test_date_header_is_rfc1123(self) -> None:
        """Test that the Date header uses the fixed GMT format."""
        spec = _assembler().assemble(None)

        (value,) = spec.header_values("Date")
        assert value.endswith(" GMT")
        assert parsedate_to_datetime(value).utcoffset() is not None

    def test_http_date_format(self) -> None:
        """Test the formatting of a known timestamp."""
        assert http_date(784111777) == "Sun, 06 Nov 1994 08:49:37 GMT"

    def test_date_header_optional(self) -> None:
        """Test that the Date header can be disabled."""
        spec = _assembler(include_date_header=False).assemble(None)

        assert spec.header_values("Date") == []

    def test_header_order(self) -> None:
        """Test Date, then dynamic headers, then attribute headers."""
        assembler = _assembler(
            dynamic_headers={"X-Static": "fixed", "X-Item": "${id}"},
            attributes_to_send="^X-.*$",
        )
        item = WorkItem.create({"id": "9", "X-Trace": "abc", "uuid": "123"})

        names = [name for name, _ in assembler.assemble(item).headers]

        assert names == ["Date", "X-Static", "X-Item", "X-Trace"]

    def test_attribute_headers_scenario(self) -> None:
        """Test that X-Trace is sent and uuid is not."""
        spec = _assembler(attributes_to_send="^X-.*$").assemble(
            WorkItem.create({"X-Trace": "abc", "uuid": "123"})
        )

        assert spec.header_values("X-Trace") == ["abc"]
        assert spec.header_values("uuid") == []

    def test_excluded_dynamic_header_skipped_with_warning(self) -> None:
        """Test that excluded header names are dropped at assembly time."""
        config = RequestConfig.model_construct(
            method="GET",
            url="http://example.com",
            content_type="${mime.type}",
            send_body=True,
            use_chunked_encoding=False,
            include_date_header=False,
            attributes_to_send=None,
            dynamic_headers={"Trusted Hostname": "evil", "X-Ok": "1"},
        )
        assembler = RequestAssembler(config, AuthConfig())

        with capture_logs() as logs:
            spec = assembler.assemble(WorkItem.create())

        assert spec.headers == (("X-Ok", "1"),)
        assert any(entry["event"] == "header_excluded" for entry in logs)
