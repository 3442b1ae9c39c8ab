"""stationfeed - Async feed reconciliation and paced change delivery."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("stationfeed")
except PackageNotFoundError:
    __version__ = "0+local"
from stationfeed.config import FeedConfig, FirstSightingPolicy
from stationfeed.exceptions import (
    FeedConfigError,
    FeedConnectionError,
    FeedError,
    FeedFetchError,
    FeedParseError,
    FeedStateError,
)
from stationfeed.feed import ConnectionState, StationFeed
from stationfeed.models import CityBikesStation, EntityRecord, Location
from stationfeed.pacing import PacingScheduler, delivery_rate, delivery_spacing
from stationfeed.poller import FeedPoller
from stationfeed.session import FeedSession
from stationfeed.sources import SnapshotSource
from stationfeed.sources.citybikes import CityBikesSource, network_url, parse_network
from stationfeed.state.delta import DeltaEngine, ReconcileResult
from stationfeed.state.inventory import InventoryTally
from stationfeed.state.store import SnapshotStore
from stationfeed.state.subscriptions import SubscriptionTable

__all__ = [
    "__version__",
    "CityBikesSource",
    "CityBikesStation",
    "ConnectionState",
    "DeltaEngine",
    "EntityRecord",
    "FeedConfig",
    "FeedConfigError",
    "FeedConnectionError",
    "FeedError",
    "FeedFetchError",
    "FeedParseError",
    "FeedPoller",
    "FeedSession",
    "FeedStateError",
    "FirstSightingPolicy",
    "InventoryTally",
    "Location",
    "PacingScheduler",
    "ReconcileResult",
    "SnapshotSource",
    "SnapshotStore",
    "StationFeed",
    "SubscriptionTable",
    "delivery_rate",
    "delivery_spacing",
    "network_url",
    "parse_network",
]
