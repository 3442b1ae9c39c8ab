"""CityBikes (https://api.citybik.es) network source."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from stationfeed._constants import CITYBIKES_BASE_URL
from stationfeed._transport import JsonTransport, Transport
from stationfeed.config import FeedConfig
from stationfeed.exceptions import FeedConnectionError, FeedError, FeedParseError
from stationfeed.models.citybikes import CityBikesStation
from stationfeed.models.record import EntityRecord

_logger = logging.getLogger(__name__)


def network_url(network_id: str) -> str:
    """URL of a CityBikes network document, e.g. ``network_url("velib")``."""
    return f"{CITYBIKES_BASE_URL}/{network_id.strip().strip('/')}"


def parse_network(payload: Any, *, url: str = "") -> list[EntityRecord]:
    """Convert a CityBikes network document into entity records.

    Stations that cannot be identified are skipped; a document without a
    station list raises :class:`FeedParseError`.
    """
    if not isinstance(payload, dict):
        raise FeedParseError("Network document is not an object", url=url)
    network = payload.get("network", payload)
    stations = network.get("stations") if isinstance(network, dict) else None
    if not isinstance(stations, list):
        raise FeedParseError("Network document has no 'stations' list", url=url)

    records: list[EntityRecord] = []
    skipped = 0
    for raw in stations:
        try:
            records.append(CityBikesStation.model_validate(raw).to_entity_record())
        except (ValidationError, ValueError):
            skipped += 1
            _logger.debug("Skipping unparseable station: %r", raw, exc_info=True)
    if skipped:
        _logger.debug("Skipped %d of %d stations from %s", skipped, len(stations), url)
    return records


class CityBikesSource:
    """Fetch bike station snapshots for one CityBikes network.

    Usage::

        source = CityBikesSource(network_url("velib"))
        async with StationFeed(source, FeedConfig()) as feed:
            ...
    """

    def __init__(
        self,
        url: str,
        *,
        config: FeedConfig | None = None,
        http_session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._url = url
        self._config = config or FeedConfig()
        self._external_session = http_session is not None
        self._http_session = http_session
        self._transport = transport

    @property
    def target(self) -> str:
        return self._url

    async def open(self) -> None:
        if self._transport is not None:
            return
        try:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = JsonTransport(self._http_session, timeout=self._config.request_timeout)
        except Exception as exc:
            raise FeedConnectionError(f"Could not open HTTP session for {self._url}: {exc}") from exc

    async def close(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None
        elif self._external_session:
            self._transport = None

    async def fetch_snapshot(self) -> list[EntityRecord]:
        if self._transport is None:
            raise FeedError("Source not opened. Connect the feed first.")
        payload = await self._transport.get_json(self._url)
        return parse_network(payload, url=self._url)
