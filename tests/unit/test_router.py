"""Unit tests for outcome classification and routing."""

import pytest

from invokehttp.metrics import InvokeHttpMetrics
from invokehttp.models import Outcome, Relationship, WorkItem
from invokehttp.router import OutcomeRouter, classify
from invokehttp.session import InMemoryContext, InMemorySession


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Reset metrics singleton before each test."""
    InvokeHttpMetrics.reset()


class ExplodingRemoveSession(InMemorySession):
    """Session whose remove always fails."""

    def remove(self, item: WorkItem) -> None:
        raise RuntimeError("remove failed")


class TestClassify:
    """Tests for the pure status classification."""

    def test_total_over_status_range(self) -> None:
        """Test that every code maps by status class only."""
        for code in range(100, 600):
            outcome = classify(code)
            if code // 100 == 2:
                assert outcome == Outcome.SUCCESS
            elif code // 100 == 5:
                assert outcome == Outcome.RETRY
            else:
                assert outcome == Outcome.NO_RETRY

    @pytest.mark.parametrize("code", [0, 99, 600, 999])
    def test_out_of_range_codes_are_no_retry(self, code: int) -> None:
        """Test that unusual codes still classify deterministically."""
        assert classify(code) == Outcome.NO_RETRY


def _exchange_items() -> tuple[InMemorySession, InMemoryContext, WorkItem, WorkItem]:
    session = InMemorySession.with_items([WorkItem.create()])
    original = session.get()
    assert original is not None
    response = session.create_child(original)
    return session, InMemoryContext(), original, response


class TestRoute:
    """Tests for routing effects."""

    def test_success_routes_both_items(self) -> None:
        """Test that 2xx sends original to Original and response to Response."""
        session, context, original, response = _exchange_items()

        outcome = OutcomeRouter().route(session, context, 200, original, response)

        assert outcome == Outcome.SUCCESS
        assert session.transferred(Relationship.ORIGINAL) == [original]
        assert session.transferred(Relationship.RESPONSE) == [response]
        assert not context.yield_requested

    def test_always_output_sends_response_once(self) -> None:
        """Test that the response item is not sent twice on success."""
        session, context, original, response = _exchange_items()

        OutcomeRouter(always_output_response=True).route(
            session, context, 204, original, response
        )

        assert session.transferred(Relationship.RESPONSE) == [response]
        assert session.unaccounted == []

    def test_retry_penalizes(self) -> None:
        """Test that 5xx penalizes the original and sends it to Retry."""
        session = InMemorySession.with_items([WorkItem.create()])
        original = session.get()

        outcome = OutcomeRouter().route(session, InMemoryContext(), 503, original, None)

        assert outcome == Outcome.RETRY
        (retried,) = session.transferred(Relationship.RETRY)
        assert retried.penalized
        assert session.transferred(Relationship.RESPONSE) == []

    @pytest.mark.parametrize(("penalize", "expected"), [(False, False), (True, True)])
    def test_no_retry_penalty_is_configurable(
        self, penalize: bool, expected: bool
    ) -> None:
        """Test that NoRetry penalizes only when configured."""
        session = InMemorySession.with_items([WorkItem.create()])
        original = session.get()

        OutcomeRouter(penalize_no_retry=penalize).route(
            session, InMemoryContext(), 404, original, None
        )

        (item,) = session.transferred(Relationship.NO_RETRY)
        assert item.penalized is expected

    def test_always_output_on_no_retry(self) -> None:
        """Test that the response item is sent alongside a NoRetry original."""
        session, context, original, response = _exchange_items()

        OutcomeRouter(always_output_response=True).route(
            session, context, 404, original, response
        )

        assert session.transferred(Relationship.RESPONSE) == [response]
        assert len(session.transferred(Relationship.NO_RETRY)) == 1

    def test_source_style_non_success_yields(self) -> None:
        """Test that a failed status without an original requests a yield."""
        session = InMemorySession()
        context = InMemoryContext()

        OutcomeRouter().route(session, context, 500, None, None)

        assert context.yield_requested
        assert session.transfers == []

    def test_source_style_success_does_not_yield(self) -> None:
        """Test that a successful source-style exchange keeps running."""
        session = InMemorySession()
        context = InMemoryContext()
        response = session.create()

        OutcomeRouter().route(session, context, 200, None, response)

        assert not context.yield_requested
        assert session.transferred(Relationship.RESPONSE) == [response]
        assert session.transferred(Relationship.ORIGINAL) == []


class TestRouteFailure:
    """Tests for the failure path."""

    def test_failure_stamps_and_penalizes(self) -> None:
        """Test that the original carries the error and is penalized."""
        session, context, original, response = _exchange_items()

        outcome = OutcomeRouter().route_failure(
            session, context, ValueError("bad url"), original, response
        )

        assert outcome == Outcome.FAILURE
        (failed,) = session.transferred(Relationship.FAILURE)
        assert failed.penalized
        assert failed.attributes["invokehttp.exception.class"] == "ValueError"
        assert failed.attributes["invokehttp.exception.message"] == "bad url"
        assert session.removed == [response]
        assert InvokeHttpMetrics.get_instance().http_failures_total == {"ValueError": 1}

    def test_source_style_failure_yields(self) -> None:
        """Test that a failure with no original requests a yield."""
        session = InMemorySession()
        context = InMemoryContext()

        OutcomeRouter().route_failure(session, context, OSError("down"), None, None)

        assert context.yield_requested
        assert session.transfers == []

    def test_cleanup_failure_is_swallowed(self) -> None:
        """Test that a failing response cleanup does not mask the failure."""
        session = ExplodingRemoveSession.with_items([WorkItem.create()])
        original = session.get()
        assert original is not None
        response = session.create_child(original)

        outcome = OutcomeRouter().route_failure(
            session, InMemoryContext(), RuntimeError("boom"), original, response
        )

        assert outcome == Outcome.FAILURE
        assert len(session.transferred(Relationship.FAILURE)) == 1
