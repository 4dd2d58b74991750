"""Address search and commune resolution — api-adresse.data.gouv.fr + geo.api.gouv.fr.

Both services are public and need no key. Address search results are
cached in memory for an hour (SHA256 key), commune lookups are not.
"""

import hashlib
import logging
import time

import httpx

from urbassist.config import settings
from urbassist.core.types import AddressResult
from urbassist.observability.tracing import trace

logger = logging.getLogger(__name__)

# In-memory address cache: 1h TTL, SHA-256 key
_address_cache: dict[str, tuple[list[AddressResult], float]] = {}
ADDRESS_CACHE_TTL = 3600  # 1 hour

# Returned when the BAN has no match, so the dossier flow can continue
MOCK_ADDRESS = {
    "city": "Nice",
    "postcode": "06000",
    "citycode": "06088",
    "context": "06, Alpes-Maritimes, Provence-Alpes-Côte d'Azur",
    "lng": 7.2622,
    "lat": 43.7102,
}


def _cache_key(query: str) -> str:
    """Generate a stable cache key from an address query."""
    normalized = query.strip().lower()
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


def _client(client: httpx.AsyncClient | None) -> httpx.AsyncClient:
    return client or httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.user_agent},
    )


def _to_address(feature: dict) -> AddressResult:
    props = feature.get("properties") or {}
    coords = (feature.get("geometry") or {}).get("coordinates") or [None, None]
    return AddressResult(
        label=props.get("label", ""),
        city=props.get("city", ""),
        postcode=props.get("postcode", ""),
        citycode=props.get("citycode", ""),
        context=props.get("context", ""),
        lng=coords[0],
        lat=coords[1] if len(coords) > 1 else None,
    )


@trace(name="search_address", span_type="TOOL")
async def search_address(query: str, limit: int = 5) -> list[AddressResult]:
    """Search the national address base (BAN).

    Returns up to ``limit`` candidates, or a single mock candidate flagged
    ``mock=True`` when nothing matched. HTTP failures propagate.
    """
    query = query.strip()
    if not query:
        raise ValueError("Address required")

    key = _cache_key(f"{query}|{limit}")
    if key in _address_cache:
        cached, cached_time = _address_cache[key]
        if time.monotonic() - cached_time < ADDRESS_CACHE_TTL:
            logger.info("Address cache hit for: %s", query[:40])
            return cached

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        resp = await client.get(
            f"{settings.adresse_api_url}/search/",
            params={"q": query, "limit": limit},
        )
        resp.raise_for_status()
        data = resp.json()

    results = [_to_address(f) for f in data.get("features", [])]
    if not results:
        logger.warning("No address results for: %s", query)
        return [AddressResult(label=query, mock=True, **MOCK_ADDRESS)]

    _address_cache[key] = (results, time.monotonic())
    return results


async def resolve_commune(lng: float, lat: float, client: httpx.AsyncClient | None = None) -> dict | None:
    """Commune containing a point: {"code", "nom", "population", ...} or None."""
    owned = client is None
    http = _client(client)
    try:
        resp = await http.get(
            f"{settings.geo_api_url}/communes",
            params={"lat": lat, "lon": lng, "fields": "code,nom,departement,population", "limit": 1},
        )
        resp.raise_for_status()
        communes = resp.json()
    except httpx.HTTPError as e:
        logger.warning("Commune lookup failed at (%s, %s): %s", lng, lat, e)
        return None
    finally:
        if owned:
            await http.aclose()

    return communes[0] if communes else None


async def commune_info(code: str, client: httpx.AsyncClient | None = None) -> dict | None:
    """Commune record by INSEE code, with population and surface (hectares)."""
    owned = client is None
    http = _client(client)
    try:
        resp = await http.get(
            f"{settings.geo_api_url}/communes/{code}",
            params={"fields": "nom,code,population,surface"},
        )
        resp.raise_for_status()
        return resp.json()
    except httpx.HTTPError as e:
        logger.warning("Commune info failed for %s: %s", code, e, extra={"citycode": code})
        return None
    finally:
        if owned:
            await http.aclose()
