"""Error types for recommendation generation."""

from enum import Enum


class GenerationError(Exception):
    """A generation unit failed.

    Attributes:
        user_id: Owner of the failed unit.
        feed_type: Feed type of the failed unit.
    """

    def __init__(self, message: str, user_id: str, feed_type: str) -> None:
        super().__init__(message)
        self.user_id = user_id
        self.feed_type = feed_type


class GenerationCancelledError(GenerationError):
    """A generation unit was cancelled before persisting."""


class GenerationStateError(Exception):
    """Raised when an invalid generation state transition is attempted."""

    def __init__(self, from_state: Enum, to_state: Enum) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid generation state transition: {from_state.name} -> {to_state.name}"
        )
