"""Data models for stationfeed."""

from stationfeed.models.citybikes import CityBikesStation
from stationfeed.models.record import WGS84_WKID, EntityRecord, Location

__all__ = [
    "CityBikesStation",
    "EntityRecord",
    "Location",
    "WGS84_WKID",
]
