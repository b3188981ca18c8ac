"""Recommendation configuration loading and validation."""

from feedrec.config.loader import ConfigLoader, ConfigValidationError, load_config
from feedrec.config.schemas import (
    DiversityConfig,
    FeedsConfig,
    GenerationConfig,
    RecommendationConfig,
    ScoringConfig,
)
from feedrec.config.state_machine import (
    ConfigState,
    ConfigStateError,
    ConfigStateMachine,
)


__all__ = [
    "ConfigLoader",
    "ConfigState",
    "ConfigStateError",
    "ConfigStateMachine",
    "ConfigValidationError",
    "DiversityConfig",
    "FeedsConfig",
    "GenerationConfig",
    "RecommendationConfig",
    "ScoringConfig",
    "load_config",
]
