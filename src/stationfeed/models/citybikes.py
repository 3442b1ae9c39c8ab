"""CityBikes v2 station payload model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from stationfeed.ingestion.normalize import safe_float, safe_int, safe_str
from stationfeed.models.record import EntityRecord, Location


class CityBikesStation(BaseModel):
    """A bike station as returned by ``/v2/networks/<network>``.

    The ``extra`` block is flattened into the model. ``uid`` from
    ``extra`` is the stable station id; the top-level ``id`` is used
    when a network does not provide one.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    station_id: str | None = Field(default=None, validation_alias=AliasChoices("uid", "station_id"))
    observation_id: str | None = Field(default=None, validation_alias=AliasChoices("id", "observation_id"))
    name: str | None = None
    address: str | None = None
    timestamp: str | None = None
    longitude: float | None = None
    latitude: float | None = None
    free_bikes: int | None = None
    ebikes: int | None = None
    empty_slots: int | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _merge_extra(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        extra = values.get("extra")
        if isinstance(extra, dict):
            for key in ("uid", "address", "ebikes"):
                if key in extra:
                    merged[key] = extra[key]
        merged.setdefault("raw", values)
        return merged

    @field_validator("station_id", "observation_id", "name", "address", "timestamp", mode="before")
    @classmethod
    def _coerce_strings(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("longitude", "latitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("free_bikes", "ebikes", "empty_slots", mode="before")
    @classmethod
    def _coerce_ints(cls, value: Any) -> int | None:
        return safe_int(value)

    @property
    def entity_id(self) -> str | None:
        return self.station_id or self.observation_id

    def to_entity_record(self) -> EntityRecord:
        entity_id = self.entity_id
        if entity_id is None:
            raise ValueError("station has neither extra.uid nor id")

        gauges: dict[str, int] = {}
        for name, value in (
            ("available", self.free_bikes),
            ("available_secondary", self.ebikes),
            ("empty_capacity", self.empty_slots),
        ):
            if value is not None:
                gauges[name] = value

        location = None
        if self.longitude is not None and self.latitude is not None:
            location = Location(longitude=self.longitude, latitude=self.latitude)

        attributes = {
            key: value
            for key, value in (
                ("name", self.name),
                ("address", self.address),
                ("observation_id", self.observation_id),
            )
            if value is not None
        }
        return EntityRecord(
            id=entity_id,
            gauges=gauges,
            timestamp=self.timestamp,
            location=location,
            attributes=attributes,
        )
