"""Generation unit state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog

from feedrec.recommendation.errors import GenerationStateError


logger = structlog.get_logger()


class GenerationState(Enum):
    """Lifecycle of one (user, feed type, date) generation unit.

    State transitions:
        PENDING -> CANDIDATES_LOADED: Candidates read for the feed type
        CANDIDATES_LOADED -> FILTERED: Exclusion filters applied
        FILTERED -> SCORED: Composite scores computed
        SCORED -> RANKED: Diversity applied, ordered and truncated
        RANKED -> PERSISTED: Rows replaced for the key
        Any non-terminal -> FAILED: Error or cancellation
    """

    PENDING = auto()
    CANDIDATES_LOADED = auto()
    FILTERED = auto()
    SCORED = auto()
    RANKED = auto()
    PERSISTED = auto()
    FAILED = auto()


class GenerationStateMachine:
    """State machine for a generation unit.

    Logs invariant violations when invalid transitions are attempted.
    """

    VALID_TRANSITIONS: ClassVar[dict[GenerationState, set[GenerationState]]] = {
        GenerationState.PENDING: {
            GenerationState.CANDIDATES_LOADED,
            GenerationState.FAILED,
        },
        GenerationState.CANDIDATES_LOADED: {
            GenerationState.FILTERED,
            GenerationState.FAILED,
        },
        GenerationState.FILTERED: {
            GenerationState.SCORED,
            GenerationState.FAILED,
        },
        GenerationState.SCORED: {
            GenerationState.RANKED,
            GenerationState.FAILED,
        },
        GenerationState.RANKED: {
            GenerationState.PERSISTED,
            GenerationState.FAILED,
        },
        GenerationState.PERSISTED: set(),  # Terminal state
        GenerationState.FAILED: set(),  # Terminal state
    }

    def __init__(self, user_id: str, feed_type: str) -> None:
        """Initialize the state machine in PENDING state.

        Args:
            user_id: Owner of the unit, for logging.
            feed_type: Feed type of the unit, for logging.
        """
        self._state = GenerationState.PENDING
        self._log = logger.bind(
            component="recommendation",
            user_id=user_id,
            feed_type=feed_type,
        )

    @property
    def state(self) -> GenerationState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: GenerationState) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: GenerationState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            GenerationStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise GenerationStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "generation_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_terminal(self) -> bool:
        """Check if the current state is terminal."""
        return self._state in (GenerationState.PERSISTED, GenerationState.FAILED)
