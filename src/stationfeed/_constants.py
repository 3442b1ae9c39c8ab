"""Internal constants shared across the library."""

USER_AGENT = "stationfeed/1 (+https://api.citybik.es)"
CITYBIKES_BASE_URL = "https://api.citybik.es/v2/networks"
