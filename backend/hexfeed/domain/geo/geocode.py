"""Place-name lookup against a Nominatim-compatible search endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from hexfeed.domain.search.exceptions import InvalidRequest, NotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 200


@dataclass(frozen=True)
class GeocodeResult:
    lat: float
    lon: float
    display_name: str


@dataclass
class Geocoder:
    """Resolves a free-form address to the best matching coordinate."""

    http: httpx.AsyncClient
    url: str
    user_agent: str
    request_timeout: float = 5.0

    async def lookup(self, q: str) -> GeocodeResult:
        query = (q or "").strip()
        if not (MIN_QUERY_LENGTH <= len(query) <= MAX_QUERY_LENGTH):
            raise InvalidRequest(f"q must be {MIN_QUERY_LENGTH}..{MAX_QUERY_LENGTH} characters")
        try:
            response = await self.http.get(
                self.url,
                params={"format": "json", "q": query, "limit": 1},
                headers={"User-Agent": self.user_agent},
                timeout=self.request_timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("geocode.upstream.error", extra={"error": type(exc).__name__})
            raise UpstreamUnavailable("geocoding request failed") from exc
        if response.status_code != 200:
            logger.warning("geocode.upstream.status", extra={"status": response.status_code})
            raise UpstreamUnavailable("geocoding request failed")
        try:
            data: Any = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("geocoding response was not JSON") from exc
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise NotFound("address not found")
        first = data[0]
        try:
            return GeocodeResult(
                lat=float(first["lat"]),
                lon=float(first["lon"]),
                display_name=str(first.get("display_name") or query),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamUnavailable("geocoding response was malformed") from exc
