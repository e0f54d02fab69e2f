"""
Address geocoding against OpenStreetMap Nominatim.

- Models: Data structures (AddressRecord, GeocodeResult, ...)
- Base classes: Cache, directory and rate limiter interfaces
- Request builder: Address -> provider query parameters
- Geocoders: Cached provider lookups
- Resolver: Provider address -> country/state/county ids
- Pipeline: Enrich address records
- Storage: DuckDB and in-memory backends
- Throttling: Request rate limiting
"""

from .models import (
    AddressComponents,
    AddressRecord,
    AdministrativeMatch,
    GeocodeError,
    GeocodeResult,
    GeocodeStatus,
    NULL_SENTINEL,
    compute_cache_key,
)

from .errors import AddressValidationError

from .base import (
    AdministrativeDirectory,
    CacheGateway,
    RateLimiter,
)

from .request_builder import build_query_params
from .geocoders import NominatimClient, build_query_url
from .resolver import ResponseResolver
from .pipeline import BatchSummary, GeocodingPipeline

from .storage import (
    DuckDBAdministrativeDirectory,
    DuckDBCache,
    InMemoryCache,
)

from .throttling import (
    NoOpRateLimiter,
    SimpleRateGate,
)

from .settings import GeocodingSettings

__all__ = [
    # Models
    "AddressComponents",
    "AddressRecord",
    "AdministrativeMatch",
    "GeocodeError",
    "GeocodeResult",
    "GeocodeStatus",
    "NULL_SENTINEL",
    "compute_cache_key",
    "AddressValidationError",
    # Base classes
    "AdministrativeDirectory",
    "CacheGateway",
    "RateLimiter",
    # Pipeline
    "build_query_params",
    "NominatimClient",
    "build_query_url",
    "ResponseResolver",
    "BatchSummary",
    "GeocodingPipeline",
    # Storage
    "DuckDBAdministrativeDirectory",
    "DuckDBCache",
    "InMemoryCache",
    # Throttling
    "NoOpRateLimiter",
    "SimpleRateGate",
    # Settings
    "GeocodingSettings",
]
