"""Maps an address record onto the provider's structured query parameters."""

from typing import Optional

from .base import AdministrativeDirectory
from .models import AddressRecord


def _resolve_state_name(
    record: AddressRecord,
    directory: AdministrativeDirectory,
    use_raw_state_name: bool,
) -> Optional[str]:
    if record.state_province_id is not None:
        return directory.find_state_name_by_id(record.state_province_id)
    if use_raw_state_name:
        return record.state_province
    return directory.find_state_name_by_abbreviation(record.state_province)


def build_query_params(
    record: AddressRecord,
    directory: AdministrativeDirectory,
    use_raw_state_name: bool = False,
) -> dict[str, str]:
    """
    Build the provider query for an address.

    Empty fields are left out. The state is left out when it cannot be
    resolved or when it equals the city (city-states such as Berlin or
    Hamburg would otherwise be sent twice).

    Args:
        record: Address to query
        directory: Used to translate the state id or abbreviation to a name
        use_raw_state_name: Send ``state_province`` verbatim instead of
            treating it as an abbreviation

    Returns:
        Ordered parameters, or an empty dict when nothing is queryable
    """
    params: dict[str, str] = {}

    if record.street_address:
        params["street"] = record.street_address

    if record.city:
        params["city"] = record.city

    if record.state_province:
        state_name = _resolve_state_name(record, directory, use_raw_state_name)
        if state_name and state_name != record.city:
            params["state"] = state_name

    if record.postal_code:
        params["postalcode"] = record.postal_code

    if record.country:
        params["country"] = record.country

    if not params:
        return params

    params["addressdetails"] = "1"
    return params
