"""HTTP transport for JSON snapshot endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp

from stationfeed._constants import USER_AGENT
from stationfeed.exceptions import FeedFetchError, FeedParseError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by snapshot sources.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`JsonTransport`) concrete.
    """

    async def get_json(self, url: str) -> Any:
        ...


class JsonTransport:
    """GET a URL and decode its JSON body."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 30.0,
    ) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_json(self, url: str) -> Any:
        """Fetch *url* and return the decoded JSON document.

        Raises
        ------
        FeedFetchError
            Network failure, timeout, or a non-200 status.
        FeedParseError
            The body is not valid JSON.
        """
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }

        _logger.debug("GET %s", url)

        try:
            async with self._http.get(url, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise FeedFetchError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except FeedFetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FeedFetchError(f"Request to {url} failed: {exc!r}", url=url) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FeedParseError(f"Invalid JSON from {url}: {text[:200]}", url=url) from exc
