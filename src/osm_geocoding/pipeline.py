"""
Geocode-and-resolve pipeline.

Builds the provider query for an address, looks it up (retrying once
without the street), and writes coordinates and directory ids back onto
the address.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterable, MutableMapping, Optional

import requests
from tqdm import tqdm

from .base import AdministrativeDirectory, CacheGateway, RateLimiter
from .geocoders import NominatimClient
from .models import AddressRecord, GeocodeResult
from .request_builder import build_query_params
from .resolver import ResponseResolver
from .settings import GeocodingSettings
from .settings import settings as default_settings
from .storage import DuckDBAdministrativeDirectory, DuckDBCache, InMemoryCache
from .throttling import rate_limiter_for

logger = logging.getLogger(__name__)

REGION_FIELDS = ("state_province_id", "county_id", "country_id")


@dataclass(frozen=True)
class BatchSummary:
    """Counts for one enrich_batch run."""
    total: int
    geocoded: int
    failed: int
    errors: int


class GeocodingPipeline:
    """
    Enriches address records with coordinates and region ids.

    One instance can be shared by many threads; the only shared state is
    the cache and the directory, which are injected.
    """

    def __init__(
        self,
        client: NominatimClient,
        directory: AdministrativeDirectory,
        base_url: str = "https://nominatim.openstreetmap.org/search",
        use_raw_state_name: bool = False,
        max_workers: int = 4,
    ):
        self.client = client
        self.directory = directory
        self.base_url = base_url
        self.use_raw_state_name = use_raw_state_name
        self.max_workers = max_workers

    @classmethod
    def create(
        cls,
        cache: CacheGateway,
        directory: AdministrativeDirectory,
        user_agent: str,
        base_url: str = "https://nominatim.openstreetmap.org/search",
        timeout: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        use_raw_state_name: bool = False,
        session: Optional[requests.Session] = None,
        max_workers: int = 4,
    ) -> "GeocodingPipeline":
        """Wire a client and resolver around the given cache and directory."""
        client = NominatimClient(
            cache=cache,
            resolver=ResponseResolver(directory),
            user_agent=user_agent,
            base_url=base_url,
            timeout=timeout,
            rate_limiter=rate_limiter,
            session=session,
        )
        return cls(
            client=client,
            directory=directory,
            base_url=base_url,
            use_raw_state_name=use_raw_state_name,
            max_workers=max_workers,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[GeocodingSettings] = None,
        cache: Optional[CacheGateway] = None,
        directory: Optional[AdministrativeDirectory] = None,
    ) -> "GeocodingPipeline":
        """
        Build a pipeline from configuration.

        Without an explicit cache or directory, DuckDB backends are opened
        at the configured paths (in memory when no path is set). Without
        settings, the module-level settings loaded from the environment are
        used.
        """
        settings = settings or default_settings
        if cache is None:
            ttl = timedelta(days=settings.cache_ttl_days) if settings.cache_ttl_days else None
            if settings.cache_path is not None:
                cache = DuckDBCache(settings.cache_path, ttl=ttl)
            else:
                cache = InMemoryCache()
        if directory is None:
            directory = DuckDBAdministrativeDirectory(settings.directory_path or ":memory:")

        return cls.create(
            cache=cache,
            directory=directory,
            user_agent=settings.user_agent,
            base_url=settings.base_url,
            timeout=settings.timeout,
            rate_limiter=rate_limiter_for(settings.requests_per_second),
            use_raw_state_name=settings.use_raw_state_name,
            max_workers=settings.max_workers,
        )

    def enrich(self, record: AddressRecord) -> bool:
        """
        Geocode an address and write the results onto it.

        Coordinates are always written (None when not found). Region ids
        are only filled in where the record has none yet. A lookup error
        is copied into ``geo_code_error``.

        Returns:
            True if both coordinates were found
        """
        result = self._enrich(record)
        return result is not None and result.has_coordinates()

    def _enrich(self, record: AddressRecord) -> Optional[GeocodeResult]:
        """Enrich a record; None when it had nothing to query."""
        params = build_query_params(record, self.directory, self.use_raw_state_name)
        if not params:
            record.geo_code_1 = None
            record.geo_code_2 = None
            return None

        result = self.client.lookup(self.base_url, params)

        if result.is_empty() and "street" in params:
            # try again without street, a misspelled street is the usual cause
            retry_params = {k: v for k, v in params.items() if k != "street"}
            result = self.client.lookup(self.base_url, retry_params)

        self._apply(record, result)
        return result

    def enrich_values(self, values: MutableMapping[str, Any]) -> bool:
        """
        Enrich a CRM value mapping in place.

        Unset values are read and written as the ``"null"`` sentinel. A
        record with nothing to query only gets its coordinates reset.
        """
        record = AddressRecord.from_values(values)
        result = self._enrich(record)
        values.update(record.enrichment_values(include_regions=result is not None))
        return result is not None and result.has_coordinates()

    def enrich_batch(
        self,
        records: Iterable[AddressRecord],
        max_workers: Optional[int] = None,
        progress: bool = False,
    ) -> BatchSummary:
        """
        Enrich many records concurrently.

        An exception while enriching one record is recorded on that
        record's ``geo_code_error`` and never stops the run.

        Args:
            records: Records to enrich in place
            max_workers: Worker threads (defaults to the pipeline's max_workers)
            progress: Show a tqdm progress bar

        Returns:
            BatchSummary with counts for the run
        """
        records = list(records)
        max_workers = max_workers or self.max_workers
        geocoded = 0
        failed = 0
        errors = 0

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(self.enrich, record): index
                for index, record in enumerate(records)
            }

            with tqdm(total=len(futures), desc="Geocoding addresses", unit="addr", disable=not progress) as pbar:
                for future in as_completed(futures):
                    index = futures[future]
                    try:
                        found = future.result()
                    except Exception as e:
                        found = False
                        # only the type: messages may quote address data
                        logger.error(f"Enriching record #{index} failed: {type(e).__name__}")
                        records[index].geo_code_error = f"Geocoding failed ({type(e).__name__})"

                    if found:
                        geocoded += 1
                    else:
                        failed += 1
                    if records[index].geo_code_error is not None:
                        errors += 1

                    pbar.set_postfix({'geocoded': geocoded, 'failed': failed})
                    pbar.update(1)

        logger.info(f"Geocoding complete: {geocoded} geocoded, {failed} failed ({errors} errors)")
        return BatchSummary(total=len(records), geocoded=geocoded, failed=failed, errors=errors)

    @staticmethod
    def _apply(record: AddressRecord, result: GeocodeResult) -> None:
        record.geo_code_1 = result.latitude
        record.geo_code_2 = result.longitude

        for name in REGION_FIELDS:
            if getattr(record, name) is None:
                setattr(record, name, getattr(result, name))

        if result.error_message is not None:
            record.geo_code_error = result.error_message
