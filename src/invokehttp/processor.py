"""InvokeHTTP processor: one outbound HTTP exchange per work item.

Per trigger the processor assembles a request from the incoming item (or
runs source-style without one), executes it on the shared transport handle,
delivers the response body to the response item and/or an attribute of the
original item, and routes both items by status class.
"""

import io
import time
import uuid

import structlog

from invokehttp.capture import ResponseCapturer
from invokehttp.config.schemas import InvokeHttpConfig
from invokehttp.constants import (
    BODY_METHODS,
    MIME_TYPE,
    REMOTE_DN,
    REQUEST_URL,
    RESPONSE_BODY,
    STATUS_CODE,
    STATUS_MESSAGE,
    TRANSACTION_ID,
)
from invokehttp.errors import ConfigurationError
from invokehttp.expression import evaluate
from invokehttp.headers import charset_from_content_type, headers_to_attributes
from invokehttp.metrics import InvokeHttpMetrics
from invokehttp.models import ExchangeResult, Outcome, WorkItem
from invokehttp.redact import redact_headers, redact_url_credentials
from invokehttp.request import RequestAssembler
from invokehttp.router import OutcomeRouter
from invokehttp.session import (
    ProcessSession,
    ProvenanceEvent,
    ProvenanceEventType,
    SchedulingContext,
)
from invokehttp.state_machine import (
    ProcessorState,
    ProcessorStateError,
    ProcessorStateMachine,
)
from invokehttp.transport.builder import (
    TransportBuilder,
    TransportHandle,
    TransportHolder,
)


logger = structlog.get_logger()


class InvokeHttpProcessor:
    """Schedulable processor issuing one HTTP request per work item.

    Lifecycle:
        on_scheduled(config) builds the transport handle and enters RUNNING.
        on_trigger(session, context) processes at most one work item.
        on_stopped() closes the handle and returns to STOPPED.

    The transport handle and Digest credential cache are shared by
    concurrent triggers. Configuration is replaced only while not RUNNING.
    """

    def __init__(
        self,
        builder: TransportBuilder | None = None,
        capturer: ResponseCapturer | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            builder: Transport builder; a default one when omitted.
            capturer: Response capturer; a default one when omitted.
        """
        self._holder = TransportHolder(builder)
        self._capturer = capturer or ResponseCapturer()
        self._state = ProcessorStateMachine()
        self._config: InvokeHttpConfig | None = None
        self._assembler: RequestAssembler | None = None
        self._router: OutcomeRouter | None = None
        self._metrics = InvokeHttpMetrics.get_instance()
        self._log = logger.bind(component="processor")

    @property
    def state(self) -> ProcessorState:
        """Current lifecycle state."""
        return self._state.state

    @property
    def transport(self) -> TransportHandle | None:
        """Current transport handle, if built."""
        return self._holder.current()

    def on_scheduled(self, config: InvokeHttpConfig) -> None:
        """Build the transport for a configuration and start accepting triggers.

        Args:
            config: Validated processor configuration.

        Raises:
            ConfigurationError: If the transport cannot be built. The
                processor enters INVALID and refuses triggers.
            ProcessorStateError: If the processor is already RUNNING.
        """
        if self._state.is_running:
            raise ProcessorStateError(ProcessorState.RUNNING, ProcessorState.RUNNING)

        try:
            self._holder.rebuild(config.transport)
        except ConfigurationError as e:
            self._log.error("schedule_failed", error=str(e))
            self._state.transition_to(ProcessorState.INVALID)
            raise

        self._config = config
        self._assembler = RequestAssembler(config.request, config.transport.auth)
        self._router = OutcomeRouter(
            penalize_no_retry=config.penalize_no_retry,
            always_output_response=config.always_output_response,
        )
        self._state.transition_to(ProcessorState.RUNNING)

    def on_stopped(self) -> None:
        """Close the transport handle and stop accepting triggers."""
        if self._state.state == ProcessorState.STOPPED:
            return
        self._holder.clear()
        self._state.transition_to(ProcessorState.STOPPED)

    def on_trigger(
        self, session: ProcessSession, context: SchedulingContext
    ) -> Outcome | None:
        """Process at most one work item.

        Args:
            session: Session providing and receiving work items.
            context: Scheduling context receiving yield requests.

        Returns:
            The outcome applied, or None when there was nothing to do.

        Raises:
            ProcessorStateError: If the processor is not RUNNING.
        """
        self._state.require_running()
        with self._holder.lease() as handle:
            return self._trigger(session, context, handle)

    def _trigger(
        self,
        session: ProcessSession,
        context: SchedulingContext,
        handle: TransportHandle | None,
    ) -> Outcome | None:
        config = self._config
        assembler = self._assembler
        router = self._router
        if handle is None or config is None or assembler is None or router is None:
            raise RuntimeError("Processor is RUNNING without a transport handle")

        put_to_attribute = config.put_response_body_in_attribute is not None
        original = session.get()
        if original is None:
            if context.has_incoming_connection:
                return None
            if assembler.resolve_method(None) in BODY_METHODS:
                return None
            if put_to_attribute:
                original = session.create()

        self._log_cache_metrics(handle)

        transaction_id = str(uuid.uuid4())
        response: WorkItem | None = None
        try:
            spec = assembler.assemble(original)
            log = self._log.bind(
                transaction_id=transaction_id,
                url=redact_url_credentials(spec.url),
            )
            log.debug(
                "request_sent",
                method=spec.method,
                headers=redact_headers(spec.headers),
            )

            if spec.body is not None and original is not None:
                session.report(
                    ProvenanceEvent(
                        ProvenanceEventType.SEND, original.item_id, spec.url
                    )
                )

            start_ns = time.perf_counter_ns()
            with self._capturer.execute(handle, spec) as result:
                log.debug(
                    "response_received",
                    status_code=result.status_code,
                    headers=redact_headers(result.headers),
                )

                status_attributes = {
                    STATUS_CODE: str(result.status_code),
                    STATUS_MESSAGE: result.status_message,
                    REQUEST_URL: spec.url,
                    TRANSACTION_ID: transaction_id,
                }
                header_attributes = _response_attributes(result)

                if original is not None:
                    original = session.put_attributes(original, status_attributes)
                    if config.add_response_headers:
                        original = session.put_attributes(original, header_attributes)

                success = result.is_success
                to_attribute = (
                    not success or put_to_attribute
                ) and original is not None
                to_response = (success and not put_to_attribute) or (
                    config.always_output_response
                )

                sink: io.BytesIO | None = None
                if to_response:
                    response = (
                        session.create_child(original)
                        if original is not None
                        else session.create()
                    )
                    response = session.put_attributes(response, status_attributes)
                    response = session.put_attributes(response, header_attributes)
                    if result.content_type:
                        response = session.put_attributes(
                            response, {MIME_TYPE: result.content_type}
                        )
                    sink = io.BytesIO()

                captured = self._capturer.drain(
                    result,
                    sink,
                    config.max_attribute_length if to_attribute else None,
                )

                if response is not None and sink is not None:
                    content = sink.getvalue()
                    response = session.import_from(response, content)
                    session.report(
                        ProvenanceEvent(
                            (
                                ProvenanceEventType.FETCH
                                if original is not None
                                else ProvenanceEventType.RECEIVE
                            ),
                            response.item_id,
                            spec.url,
                            elapsed_ms=_elapsed_ms(start_ns),
                        )
                    )

                if captured is not None and original is not None:
                    original = self._put_body_attribute(
                        session, config, original, captured, result, spec.url, start_ns
                    )

                self._record_exchange(result, sink, captured, start_ns)

            return router.route(
                session, context, result.status_code, original, response
            )
        except Exception as e:  # noqa: BLE001
            return router.route_failure(session, context, e, original, response)

    def _put_body_attribute(
        self,
        session: ProcessSession,
        config: InvokeHttpConfig,
        original: WorkItem,
        captured: bytes,
        result: ExchangeResult,
        url: str,
        start_ns: int,
    ) -> WorkItem:
        key = (
            evaluate(config.put_response_body_in_attribute, original.attributes) or ""
        ).strip() or RESPONSE_BODY
        text = captured.decode(
            charset_from_content_type(result.content_type), errors="replace"
        )
        original = session.put_attributes(original, {key: text})

        elapsed_ms = _elapsed_ms(start_ns)
        session.report(
            ProvenanceEvent(
                ProvenanceEventType.ATTRIBUTES_MODIFIED,
                original.item_id,
                url,
                details=(
                    f"The {key} has been added. The value of which is the body of "
                    f"a http call to {url}. It took {round(elapsed_ms)} millis."
                ),
                elapsed_ms=elapsed_ms,
            )
        )
        return original

    def _record_exchange(
        self,
        result: ExchangeResult,
        sink: io.BytesIO | None,
        captured: bytes | None,
        start_ns: int,
    ) -> None:
        received = sink.getbuffer().nbytes if sink is not None else len(captured or b"")
        self._metrics.record_request(result.status_code, received)
        self._metrics.record_duration(_elapsed_ms(start_ns))
        if result.from_cache:
            self._metrics.record_cache_hit()

    def _log_cache_metrics(self, handle: TransportHandle) -> None:
        statistics = handle.cache_statistics()
        if statistics is None:
            return
        self._log.debug(
            "etag_cache_metrics",
            request_count=statistics.request_count,
            network_count=statistics.network_count,
            hit_count=statistics.hit_count,
        )


def _response_attributes(result: ExchangeResult) -> dict[str, str]:
    """Response headers as attributes, plus the peer DN over TLS."""
    attributes = headers_to_attributes(result.headers)
    if result.peer_dn:
        attributes[REMOTE_DN] = result.peer_dn
    return attributes


def _elapsed_ms(start_ns: int) -> float:
    return (time.perf_counter_ns() - start_ns) / 1_000_000
