"""Loads recommendation.yaml into a validated RecommendationConfig."""

import hashlib
import json
import time
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from feedrec.config.schemas import RecommendationConfig
from feedrec.config.state_machine import ConfigState, ConfigStateMachine


logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """recommendation.yaml could not be parsed or was rejected by the schema."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")


class ConfigLoader:
    """Loads and validates the recommendation config file.

    Implements a state machine for configuration loading:
    UNLOADED -> LOADING -> VALIDATED -> READY

    A loader is single use; create a new one to reload.
    """

    def __init__(self, run_id: str) -> None:
        """Initialize the loader.

        Args:
            run_id: Unique identifier for the current run.
        """
        self._run_id = run_id
        self._state_machine = ConfigStateMachine(run_id=run_id)
        self._checksum: str | None = None
        self._validation_errors: list[dict[str, str]] = []
        self._validation_duration_ms: float = 0

    @property
    def state(self) -> ConfigState:
        """Get the current loader state."""
        return self._state_machine.state

    @property
    def checksum(self) -> str | None:
        """SHA-256 of the loaded file, or None for built-in defaults."""
        return self._checksum

    @property
    def validation_errors(self) -> list[dict[str, str]]:
        """Get validation errors if any."""
        return self._validation_errors.copy()

    def _load_yaml_file(self, file_path: Path) -> tuple[dict[str, object], str]:
        """Load a YAML file and compute its checksum.

        Raises:
            FileNotFoundError: If file does not exist.
            yaml.YAMLError: If YAML parsing fails.
        """
        content_bytes = file_path.read_bytes()
        checksum = hashlib.sha256(content_bytes).hexdigest()
        parsed = yaml.safe_load(content_bytes.decode("utf-8")) or {}
        if not isinstance(parsed, dict):
            msg = f"Top level of {file_path} must be a mapping"
            raise yaml.YAMLError(msg)
        return parsed, checksum

    def load(self, config_path: Path | None = None) -> RecommendationConfig:
        """Load and validate the configuration.

        Args:
            config_path: Path to recommendation.yaml. Built-in defaults are
                used when omitted.

        Returns:
            Validated, immutable configuration.

        Raises:
            ConfigValidationError: If the file cannot be parsed or validated.
            FileNotFoundError: If the file does not exist.
            ConfigStateError: If called in invalid state.
        """
        start_time = time.perf_counter()
        self._state_machine.transition(ConfigState.LOADING)

        source = str(config_path) if config_path else "<defaults>"
        log = logger.bind(
            run_id=self._run_id,
            component="config",
            file_path=source,
        )

        try:
            if config_path is None:
                data: dict[str, object] = {}
            else:
                log.info("loading_config_file")
                data, self._checksum = self._load_yaml_file(config_path)
            config = RecommendationConfig.model_validate(data)
        except ValidationError as e:
            self._fail(
                [
                    {
                        "loc": ".".join(str(loc) for loc in err["loc"]),
                        "msg": err["msg"],
                        "type": err["type"],
                    }
                    for err in e.errors()
                ],
                log,
            )
            raise ConfigValidationError(self._validation_errors, source) from e
        except yaml.YAMLError as e:
            self._fail([{"loc": "yaml", "msg": str(e), "type": "yaml_parse_error"}], log)
            raise ConfigValidationError(self._validation_errors, source) from e
        except FileNotFoundError as e:
            self._fail([{"loc": "file", "msg": str(e), "type": "file_not_found"}], log)
            raise

        self._state_machine.transition(ConfigState.VALIDATED)
        self._validation_duration_ms = (time.perf_counter() - start_time) * 1000
        log.info(
            "config_validation_complete",
            file_sha256=self._checksum,
            config_validation_duration_ms=round(self._validation_duration_ms, 2),
        )

        self._state_machine.transition(ConfigState.READY)
        log.info("config_ready")
        return config

    def _fail(
        self,
        errors: list[dict[str, str]],
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        self._state_machine.transition(ConfigState.FAILED)
        self._validation_errors.extend(errors)
        log.error(
            "config_validation_failed",
            validation_error_count=len(self._validation_errors),
            errors=self._validation_errors,
        )

    def get_validation_summary(self) -> dict[str, object]:
        """Summarize this load for `validate-config --json` and audit logs."""
        return {
            "run_id": self._run_id,
            "state": self._state_machine.state.name,
            "file_sha256": self._checksum,
            "validation_error_count": len(self._validation_errors),
            "validation_errors": self._validation_errors,
            "validation_duration_ms": self._validation_duration_ms,
        }

    def get_validation_summary_json(self) -> str:
        """Render the summary as key-sorted JSON."""
        return json.dumps(self.get_validation_summary(), sort_keys=True, indent=2)


def load_config(
    config_path: Path | None = None,
    run_id: str = "config",
) -> RecommendationConfig:
    """Load a recommendation config in one call.

    Args:
        config_path: Optional YAML file path.
        run_id: Run identifier for log context.

    Returns:
        Validated configuration.
    """
    return ConfigLoader(run_id).load(config_path)
