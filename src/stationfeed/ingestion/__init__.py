"""Ingestion layer.

Defensive parsing helpers shared by snapshot sources that turn raw
payloads into :class:`~stationfeed.models.EntityRecord` values.
"""

__all__: list[str] = []
