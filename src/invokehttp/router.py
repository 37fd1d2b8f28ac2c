"""Outcome Router: classifies exchanges and transfers work items.

Classification is a pure function of the status class. Transfers, penalties
and yield requests are applied separately against the session.
"""

import structlog

from invokehttp.constants import (
    EXCEPTION_CLASS,
    EXCEPTION_MESSAGE,
    STATUS_CLASS_SERVER_ERROR,
    STATUS_CLASS_SUCCESS,
)
from invokehttp.metrics import InvokeHttpMetrics
from invokehttp.models import Outcome, Relationship, WorkItem
from invokehttp.session import ProcessSession, SchedulingContext


logger = structlog.get_logger()


def classify(status_code: int) -> Outcome:
    """Classify a status code by its class.

    Args:
        status_code: HTTP status code.

    Returns:
        SUCCESS for 2xx, RETRY for 5xx, NO_RETRY otherwise.
    """
    status_class = status_code // 100
    if status_class == STATUS_CLASS_SUCCESS:
        return Outcome.SUCCESS
    if status_class == STATUS_CLASS_SERVER_ERROR:
        return Outcome.RETRY
    return Outcome.NO_RETRY


class OutcomeRouter:
    """Applies routing side effects for a classified exchange."""

    def __init__(
        self,
        penalize_no_retry: bool = False,
        always_output_response: bool = False,
    ) -> None:
        """Initialize the router.

        Args:
            penalize_no_retry: Penalize items routed to NoRetry.
            always_output_response: Send the response item to Response
                whatever the status class.
        """
        self._penalize_no_retry = penalize_no_retry
        self._always_output_response = always_output_response
        self._metrics = InvokeHttpMetrics.get_instance()
        self._log = logger.bind(component="router")

    def route(
        self,
        session: ProcessSession,
        context: SchedulingContext,
        status_code: int,
        original: WorkItem | None,
        response: WorkItem | None,
    ) -> Outcome:
        """Route a completed exchange.

        Args:
            session: Session receiving transfers.
            context: Scheduling context receiving yield requests.
            status_code: Status code of the exchange.
            original: Incoming work item, if any.
            response: Derived response item, if one was produced.

        Returns:
            The outcome applied.
        """
        outcome = classify(status_code)

        if outcome != Outcome.SUCCESS and original is None:
            context.request_yield()
            self._log.debug("yield_requested", status_code=status_code)

        response_sent = False
        if self._always_output_response and response is not None:
            self._transfer(session, response, Relationship.RESPONSE)
            response_sent = True

        if outcome == Outcome.SUCCESS:
            if original is not None:
                self._transfer(session, original, Relationship.ORIGINAL)
            if response is not None and not response_sent:
                self._transfer(session, response, Relationship.RESPONSE)
        elif original is not None:
            if outcome == Outcome.RETRY:
                original = session.penalize(original)
                self._transfer(session, original, Relationship.RETRY)
            else:
                if self._penalize_no_retry:
                    original = session.penalize(original)
                self._transfer(session, original, Relationship.NO_RETRY)

        return outcome

    def route_failure(
        self,
        session: ProcessSession,
        context: SchedulingContext,
        error: Exception,
        original: WorkItem | None,
        response: WorkItem | None,
    ) -> Outcome:
        """Route an exchange that raised before completing.

        The original item is penalized, stamped with the error and sent to
        Failure. Without an original item the caller is asked to yield. A
        derived response item is removed; a failure to remove it is logged
        and swallowed.

        Args:
            session: Session receiving transfers.
            context: Scheduling context receiving yield requests.
            error: Exception raised during the exchange.
            original: Incoming work item, if any.
            response: Derived response item created before the failure.

        Returns:
            Outcome.FAILURE.
        """
        error_class = type(error).__name__
        self._metrics.record_failure(error_class)

        if original is not None:
            self._log.error(
                "routing_to_failure",
                item_id=original.item_id,
                error_class=error_class,
                error=str(error),
            )
            original = session.penalize(original)
            original = session.put_attributes(
                original,
                {EXCEPTION_CLASS: error_class, EXCEPTION_MESSAGE: str(error)},
            )
            self._transfer(session, original, Relationship.FAILURE)
        else:
            self._log.error(
                "yielding_after_failure",
                error_class=error_class,
                error=str(error),
            )
            context.request_yield()

        if response is not None:
            try:
                session.remove(response)
            except Exception as exc:  # noqa: BLE001
                self._log.error(
                    "response_cleanup_failed",
                    item_id=response.item_id,
                    error_class=type(exc).__name__,
                    error=str(exc),
                )

        return Outcome.FAILURE

    def _transfer(
        self, session: ProcessSession, item: WorkItem, relationship: Relationship
    ) -> None:
        session.transfer(item, relationship)
        self._metrics.record_transfer(relationship)
