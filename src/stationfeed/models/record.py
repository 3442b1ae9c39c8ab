"""Entity record model shared by every stage of the feed."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stationfeed.ingestion.normalize import clean_gauges, gauge_value, safe_str

#: Spatial reference of :class:`Location` coordinates.
WGS84_WKID = 4326


class Location(BaseModel):
    """A 2D coordinate (longitude, latitude)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    longitude: float
    latitude: float
    wkid: int = WGS84_WKID


class EntityRecord(BaseModel):
    """One polled entity's attributes at a point in time.

    Parameters
    ----------
    id : str
        Stable identifier, unique within one feed session.
    gauges : dict
        Gauge name to integer value. Missing gauges count as 0 when diffing.
    timestamp : str or None
        Observation time as reported by the source.
    location : Location or None
        Position of the entity; fixed for the lifetime of an id.
    attributes : dict
        Informational attributes (name, address, ...) never used for diffing.
    change_magnitude : int
        Signed change; 0 unless the record came out of a diff.
    watched : bool
        Set by the delta engine for ids in the subscription table.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    gauges: dict[str, int] = Field(default_factory=dict)
    timestamp: str | None = None
    location: Location | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    change_magnitude: int = 0
    watched: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("id must be non-empty")
        return text

    @field_validator("gauges", mode="before")
    @classmethod
    def _coerce_gauges(cls, value: Any) -> dict[str, int]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("gauges must be a mapping")
        return clean_gauges(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> str | None:
        return safe_str(value)

    def gauge(self, name: str) -> int:
        """Gauge value for diffing (0 when absent)."""
        return gauge_value(self.gauges, name)
