"""Feed configuration for stationfeed."""

from __future__ import annotations

import dataclasses
import math
import os
from enum import StrEnum
from typing import Any

from stationfeed.exceptions import FeedConfigError

#: Default poll interval (4 minutes).
DEFAULT_POLL_INTERVAL: float = 240.0


class FirstSightingPolicy(StrEnum):
    """What to do with an entity id the Snapshot Store has never seen."""

    EMIT = "emit"
    BASELINE = "baseline"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_names(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _require_positive(name: str, value: Any) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise FeedConfigError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise FeedConfigError(f"{name} must be > 0, got {value!r}")


@dataclasses.dataclass(frozen=True)
class FeedConfig:
    """Feed configuration.

    Parameters
    ----------
    poll_interval : float
        Seconds between reconciliation cycles. Must be positive.
    pacing_enabled : bool
        Spread each cycle's change records over the poll interval instead
        of delivering them all at once.
    primary_gauges : tuple of str
        Gauges whose difference marks an entity as changed.
    magnitude_gauges : tuple of str
        Gauges summed into ``change_magnitude``. Must be a non-empty subset
        of ``primary_gauges``.
    capacity_gauge : str
        Gauge holding free capacity (e.g. empty docks); only used for the
        inventory tally.
    first_sighting : FirstSightingPolicy
        ``EMIT`` reports newly seen entities through ``on_new_entity``;
        ``BASELINE`` seeds them silently.
    request_timeout : float
        Total HTTP timeout in seconds for one fetch.
    """

    poll_interval: float = DEFAULT_POLL_INTERVAL
    pacing_enabled: bool = False
    primary_gauges: tuple[str, ...] = ("available", "available_secondary")
    magnitude_gauges: tuple[str, ...] = ("available",)
    capacity_gauge: str = "empty_capacity"
    first_sighting: FirstSightingPolicy = FirstSightingPolicy.EMIT
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        # Accept any iterable of names (lists from callers, sets from env parsing).
        object.__setattr__(self, "primary_gauges", tuple(self.primary_gauges))
        object.__setattr__(self, "magnitude_gauges", tuple(self.magnitude_gauges))
        try:
            object.__setattr__(self, "first_sighting", FirstSightingPolicy(self.first_sighting))
        except ValueError as exc:
            raise FeedConfigError(f"Unknown first_sighting policy: {self.first_sighting!r}") from exc
        self._validate()

    def _validate(self) -> None:
        _require_positive("poll_interval", self.poll_interval)
        _require_positive("request_timeout", self.request_timeout)
        if not isinstance(self.capacity_gauge, str) or not self.capacity_gauge:
            raise FeedConfigError(f"capacity_gauge must be a non-empty gauge name, got {self.capacity_gauge!r}")
        if not self.primary_gauges:
            raise FeedConfigError("primary_gauges must not be empty")
        if not self.magnitude_gauges:
            raise FeedConfigError("magnitude_gauges must not be empty")
        if any(not isinstance(name, str) or not name for name in self.primary_gauges):
            raise FeedConfigError("primary_gauges must contain non-empty gauge names")
        extra = [name for name in self.magnitude_gauges if name not in self.primary_gauges]
        if extra:
            raise FeedConfigError(f"magnitude_gauges must be a subset of primary_gauges: {extra}")

    @classmethod
    def from_env(cls, **overrides: Any) -> FeedConfig:
        """Create configuration from environment variables.

        Reads optional ``STATIONFEED_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FeedConfig
            Populated configuration.

        Raises
        ------
        FeedConfigError
            If a variable cannot be parsed or the result is invalid.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        interval_env = env.get("STATIONFEED_POLL_INTERVAL")
        if interval_env is not None and "poll_interval" not in overrides:
            try:
                config_kwargs["poll_interval"] = float(interval_env)
            except ValueError as exc:
                raise FeedConfigError(f"STATIONFEED_POLL_INTERVAL is not a number: {interval_env!r}") from exc

        timeout_env = env.get("STATIONFEED_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            try:
                config_kwargs["request_timeout"] = float(timeout_env)
            except ValueError as exc:
                raise FeedConfigError(f"STATIONFEED_REQUEST_TIMEOUT is not a number: {timeout_env!r}") from exc

        if "pacing_enabled" not in overrides:
            config_kwargs["pacing_enabled"] = _env_bool(env.get("STATIONFEED_PACING_ENABLED"), False)

        _ENV_NAMES_MAP = {
            "STATIONFEED_PRIMARY_GAUGES": "primary_gauges",
            "STATIONFEED_MAGNITUDE_GAUGES": "magnitude_gauges",
        }
        for env_key, field_name in _ENV_NAMES_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_names(val)

        _ENV_CONFIG_MAP = {
            "STATIONFEED_CAPACITY_GAUGE": "capacity_gauge",
            "STATIONFEED_FIRST_SIGHTING": "first_sighting",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip().lower() if field_name == "first_sighting" else val

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
