"""Engine settings loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum


class ConfigError(Exception):
    """Raised when configuration is invalid."""


class HistoryPolicy(StrEnum):
    """Which past registrations count as finished for loyalty and combo discounts."""

    COMPLETED = "completed"
    COMPLETED_OR_CONFIRMED = "completed_or_confirmed"


DEFAULT_DB_PATH = "admission.db"
DEFAULT_BUSY_TIMEOUT = 30.0


@dataclass(frozen=True)
class EngineSettings:
    """Settings shared by the store, the engine and the API.

    Attributes:
        db_path: SQLite database file, or ":memory:".
        history_policy: Policy applied to both loyalty and combo eligibility.
        busy_timeout_seconds: How long a writer waits for the SQLite write lock.
    """

    db_path: str = DEFAULT_DB_PATH
    history_policy: HistoryPolicy = HistoryPolicy.COMPLETED
    busy_timeout_seconds: float = DEFAULT_BUSY_TIMEOUT

    @classmethod
    def from_env(cls) -> EngineSettings:
        """Build settings from ADMISSION_* environment variables.

        Returns:
            Parsed settings; unset variables fall back to defaults.

        Raises:
            ConfigError: If a variable holds an unusable value.
        """
        db_path = os.environ.get("ADMISSION_DB_PATH", DEFAULT_DB_PATH)
        if not db_path:
            raise ConfigError("ADMISSION_DB_PATH must not be empty")

        raw_policy = os.environ.get("ADMISSION_HISTORY_POLICY", HistoryPolicy.COMPLETED.value)
        try:
            policy = HistoryPolicy(raw_policy.strip().lower())
        except ValueError as e:
            allowed = ", ".join(p.value for p in HistoryPolicy)
            raise ConfigError(
                f"Invalid ADMISSION_HISTORY_POLICY '{raw_policy}' (expected one of: {allowed})"
            ) from e

        raw_timeout = os.environ.get("ADMISSION_BUSY_TIMEOUT")
        timeout = DEFAULT_BUSY_TIMEOUT
        if raw_timeout is not None:
            try:
                timeout = float(raw_timeout)
            except ValueError as e:
                raise ConfigError(f"Invalid ADMISSION_BUSY_TIMEOUT '{raw_timeout}'") from e
            if timeout <= 0:
                raise ConfigError("ADMISSION_BUSY_TIMEOUT must be positive")

        return cls(db_path=db_path, history_policy=policy, busy_timeout_seconds=timeout)
