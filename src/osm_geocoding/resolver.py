"""
Reconciles a provider's address breakdown with the administrative directory.
"""

import logging
from typing import Mapping, Optional

from .base import AdministrativeDirectory
from .models import AddressComponents, AdministrativeMatch

logger = logging.getLogger(__name__)


class ResponseResolver:
    """
    Resolves country, state/province and county identifiers.

    Resolution runs in order and stops early when a level that later levels
    depend on cannot be found: no country means no state, no state means no
    county. A level whose value the caller already sent as a query parameter
    is skipped and left unresolved.
    """

    def __init__(self, directory: AdministrativeDirectory):
        self.directory = directory

    def resolve(
        self,
        components: AddressComponents,
        params: Mapping[str, str],
    ) -> AdministrativeMatch:
        """
        Map a provider address breakdown to directory identifiers.

        Args:
            components: Address breakdown of the first provider candidate
            params: Query parameters the lookup was made with

        Returns:
            AdministrativeMatch, each id None when unresolved or skipped
        """
        country_id: Optional[int] = None
        state_province_id: Optional[int] = None
        county_id: Optional[int] = None

        county_name = components.county_candidate()

        if "country" not in params:
            # ISO code, because country names come back translated
            if components.country_code:
                country_id = self.directory.find_country_by_iso_code(components.country_code)
            if country_id is None:
                return AdministrativeMatch()

        if "state_province" not in params:
            # Top-level divisions of city-states are only reported as a locality
            state_name = components.state or county_name
            if state_name:
                state_province_id = self.directory.find_state_by_name(state_name)
            if state_province_id is None:
                return AdministrativeMatch(country_id=country_id)

        if "county" not in params and county_name:
            county_id = self.directory.find_county_by_name(county_name)
            if county_id is None and state_province_id is not None:
                county_id = self.directory.create_county(state_province_id, county_name)
                logger.info(f"Created county {county_id} under state/province {state_province_id}")

        return AdministrativeMatch(
            country_id=country_id,
            state_province_id=state_province_id,
            county_id=county_id,
        )
