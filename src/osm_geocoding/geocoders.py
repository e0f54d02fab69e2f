"""
Nominatim search API wrapper.

Queries an OpenStreetMap Nominatim server (or a compatible one) and caches
every decodable answer, as the public server's usage policy requires.

Reference: https://operations.osmfoundation.org/policies/nominatim/
"""

import json
import logging
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import requests

from .base import CacheGateway, RateLimiter
from .models import (
    AddressComponents,
    GeocodeError,
    GeocodeResult,
    GeocodeStatus,
    compute_cache_key,
    parse_coordinate,
)
from .resolver import ResponseResolver

logger = logging.getLogger(__name__)

BODY_SNIPPET_CHARS = 200


def build_query_url(base_url: str, params: Mapping[str, str]) -> str:
    """Append ``format=json`` and the URL-encoded params to the base URL."""
    url = f"{base_url}?format=json"
    if params:
        url += "&" + urlencode(list(params.items()))
    return url


class NominatimClient:
    """
    Cached Nominatim lookups.

    Each lookup is answered from the cache when possible. On a miss the
    provider is queried once; failures are classified into a GeocodeResult
    rather than raised, so one bad address never stops a batch.
    """

    def __init__(
        self,
        cache: CacheGateway,
        resolver: ResponseResolver,
        user_agent: str,
        base_url: str = "https://nominatim.openstreetmap.org/search",
        timeout: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            cache: Store for decoded responses
            resolver: Maps a response's address breakdown to directory ids
            user_agent: Identifies this installation to the provider
            base_url: Search endpoint, used by get_coordinates
            timeout: HTTP timeout in seconds (None keeps the requests default)
            rate_limiter: Optional limiter applied before network requests
            session: Optional requests session (a new one by default)
        """
        self.cache = cache
        self.resolver = resolver
        self.user_agent = user_agent
        self.base_url = base_url
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self.session = session or requests.Session()

        logger.info(f"Initialized NominatimClient: {base_url}, timeout={timeout}")

    def lookup(self, base_url: str, params: Mapping[str, str]) -> GeocodeResult:
        """
        Look up one structured query.

        Args:
            base_url: Search endpoint without query string
            params: Query parameters (see request_builder.build_query_params)

        Returns:
            GeocodeResult with coordinates and directory ids, an error, or
            neither when the provider had no usable match
        """
        url = build_query_url(base_url, params)
        cache_key = compute_cache_key(url)

        data = self.cache.get(cache_key)
        from_cache = data is not None
        if from_cache:
            logger.debug(f"Cache hit for {cache_key}")
        else:
            logger.debug(f"Cache miss for {cache_key}")
            fetched = self._fetch(url, cache_key)
            if isinstance(fetched, GeocodeError):
                return GeocodeResult.failure(fetched)
            data = fetched

        return self._process(data, params, cache_key, from_cache)

    def get_coordinates(self, address: str) -> GeocodeResult:
        """
        Look up a free-form address string such as "Unter den Linden 1, Berlin".

        Skips the structured request building and the retry-without-street
        policy; the answer is still cached.
        """
        return self.lookup(self.base_url, {"q": address, "addressdetails": "1"})

    def _fetch(self, url: str, cache_key: str) -> Any:
        """
        Query the provider.

        Returns:
            The decoded JSON list, or a GeocodeError
        """
        if self.rate_limiter:
            self.rate_limiter.wait()

        try:
            response = self.session.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Geocoding request {cache_key} failed: {type(e).__name__}")
            return GeocodeError(
                status=GeocodeStatus.TRANSPORT_ERROR,
                message=f"Geocoding failed, request error ({type(e).__name__})",
            )

        if response.status_code != 200:
            logger.warning(f"Geocoding failed, invalid response code {response.status_code}")
            if response.status_code == 429:
                # provider says 'TOO MANY REQUESTS'
                return GeocodeError(
                    status=GeocodeStatus.RATE_LIMITED,
                    message="OVER_QUERY_LIMIT",
                    http_status=429,
                )
            return GeocodeError(
                status=GeocodeStatus.HTTP_STATUS_ERROR,
                message=f"Geocoding failed, invalid response code {response.status_code}",
                http_status=response.status_code,
            )

        body = response.text
        try:
            data = json.loads(body)
        except ValueError:
            data = None

        # objects count as collections, bare scalars and null do not
        if not isinstance(data, (list, dict)):
            # maybe the service is down; not cached so a later run can retry
            snippet = body[:BODY_SNIPPET_CHARS]
            logger.warning(f"Geocoding failed for {cache_key}, response is no valid JSON")
            return GeocodeError(
                status=GeocodeStatus.INVALID_JSON,
                message=f'Geocoding failed. "{snippet}" is no valid json-code.',
                http_status=response.status_code,
                body_snippet=snippet,
            )

        return data

    def _process(
        self,
        data: Any,
        params: Mapping[str, str],
        cache_key: str,
        from_cache: bool,
    ) -> GeocodeResult:
        if not isinstance(data, (list, dict)):
            logger.warning(f"Discarding cached entry {cache_key}, not a JSON collection")
            return GeocodeResult(status=GeocodeStatus.UNEXPECTED_SHAPE, from_cache=from_cache)

        if len(data) == 0:
            # Probably an invalid address. Cached so the same query isn't
            # repeated; not logged since the log would reveal address data.
            if not from_cache:
                self.cache.set(cache_key, data)
            return GeocodeResult(status=GeocodeStatus.EMPTY_RESULT, from_cache=from_cache)

        first = data[0] if isinstance(data, list) else None
        if not (isinstance(first, dict) and "lat" in first and "lon" in first):
            logger.info(
                f"Geocoding {cache_key}: response was positive, "
                "but no coordinates were delivered"
            )
            return GeocodeResult(status=GeocodeStatus.UNEXPECTED_SHAPE, from_cache=from_cache)

        try:
            latitude = parse_coordinate(first["lat"])
            longitude = parse_coordinate(first["lon"])
        except (TypeError, ValueError):
            logger.info(f"Geocoding {cache_key}: coordinates could not be parsed")
            return GeocodeResult(status=GeocodeStatus.UNEXPECTED_SHAPE, from_cache=from_cache)

        if not from_cache:
            self.cache.set(cache_key, data)

        components = AddressComponents.from_json(first.get("address"))
        match = self.resolver.resolve(components, params)
        return GeocodeResult.found(latitude, longitude, match, from_cache=from_cache)
