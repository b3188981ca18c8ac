"""Lifecycle of a recommendation.yaml load."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class ConfigState(Enum):
    """Where a recommendation config is on its way to the generator.

    State transitions:
        UNLOADED -> LOADING: recommendation.yaml is being read
        LOADING -> VALIDATED: Weights, windows and feed counts passed validation
        VALIDATED -> READY: Config may be handed to RecommendationGenerator
        Any non-terminal -> FAILED: Unreadable file or rejected values
    """

    UNLOADED = auto()
    LOADING = auto()
    VALIDATED = auto()
    READY = auto()
    FAILED = auto()


class ConfigStateError(Exception):
    """A config loader was driven out of order, e.g. reused after a load."""

    def __init__(self, from_state: ConfigState, to_state: ConfigState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Recommendation config cannot move from {from_state.name} "
            f"to {to_state.name}"
        )


class ConfigStateMachine:
    """Guards that only a validated config reaches the generation pipeline.

    A READY config may still be marked FAILED; FAILED is terminal, so a
    loader that failed cannot be retried in place.
    """

    VALID_TRANSITIONS: ClassVar[dict[ConfigState, set[ConfigState]]] = {
        ConfigState.UNLOADED: {ConfigState.LOADING, ConfigState.FAILED},
        ConfigState.LOADING: {ConfigState.VALIDATED, ConfigState.FAILED},
        ConfigState.VALIDATED: {ConfigState.READY, ConfigState.FAILED},
        ConfigState.READY: {ConfigState.FAILED},
        ConfigState.FAILED: set(),
    }

    def __init__(self, run_id: str | None = None) -> None:
        self._state = ConfigState.UNLOADED
        self._log = logger.bind(component="config", run_id=run_id)

    @property
    def state(self) -> ConfigState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: ConfigState) -> bool:
        """Check if the config may move to ``to_state``."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: ConfigState) -> None:
        """Move the config to a new state.

        Raises:
            ConfigStateError: If the move skips validation or leaves FAILED.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_config_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise ConfigStateError(self._state, to_state)

        self._log.debug(
            "config_state_transition",
            from_state=self._state.name,
            to_state=to_state.name,
        )
        self._state = to_state

    def is_ready(self) -> bool:
        """Check if the config may be used for generation."""
        return self._state == ConfigState.READY

    def is_failed(self) -> bool:
        """Check if the config was rejected."""
        return self._state == ConfigState.FAILED
