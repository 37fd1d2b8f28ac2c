"""Lifecycle state machine for the invokehttp processor."""

from enum import Enum

import structlog

from invokehttp.errors import InvokeHttpError


logger = structlog.get_logger()


class ProcessorState(str, Enum):
    """Lifecycle state of a processor.

    - STOPPED: No transport handle; triggers are refused
    - RUNNING: Transport handle built; triggers are accepted
    - INVALID: Last schedule failed with a configuration error
    """

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    INVALID = "INVALID"


_VALID_TRANSITIONS: dict[ProcessorState, set[ProcessorState]] = {
    ProcessorState.STOPPED: {ProcessorState.RUNNING, ProcessorState.INVALID},
    ProcessorState.RUNNING: {ProcessorState.STOPPED},
    ProcessorState.INVALID: {
        ProcessorState.RUNNING,
        ProcessorState.INVALID,
        ProcessorState.STOPPED,
    },
}


class ProcessorStateError(InvokeHttpError):
    """Raised when an illegal lifecycle transition is attempted."""

    def __init__(self, from_state: ProcessorState, to_state: ProcessorState) -> None:
        """Initialize the transition error.

        Args:
            from_state: Current state.
            to_state: Attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            "Illegal processor state transition: "
            f"{from_state.value} -> {to_state.value}"
        )


class ProcessorStateMachine:
    """Manages lifecycle transitions and logs every change."""

    def __init__(self, initial_state: ProcessorState = ProcessorState.STOPPED) -> None:
        self._state = initial_state
        self._log = logger.bind(component="processor")

    @property
    def state(self) -> ProcessorState:
        """Get the current state."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ProcessorState.RUNNING

    def can_transition_to(self, target: ProcessorState) -> bool:
        """Check if a transition to the target state is valid."""
        return target in _VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: ProcessorState) -> None:
        """Transition to a new state.

        Args:
            target: The target state.

        Raises:
            ProcessorStateError: If the transition is invalid.
        """
        if not self.can_transition_to(target):
            self._log.error(
                "illegal_state_transition",
                from_state=self._state.value,
                to_state=target.value,
            )
            raise ProcessorStateError(self._state, target)

        old_state = self._state
        self._state = target
        self._log.info(
            "state_transition",
            from_state=old_state.value,
            to_state=target.value,
        )

    def require_running(self) -> None:
        """Raise unless the processor is RUNNING.

        Raises:
            ProcessorStateError: If triggered outside RUNNING.
        """
        if not self.is_running:
            raise ProcessorStateError(self._state, ProcessorState.RUNNING)
