"""
Core data models for the geocode-and-resolve pipeline.

Frozen dataclasses carry results between the client, the resolver and the
pipeline. The address itself is a mutable pydantic model because the
pipeline enriches it in place.
"""

from dataclasses import dataclass
from enum import StrEnum
from hashlib import sha1
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import AddressValidationError

# Literal used by the CRM for unset values in interoperating fields
NULL_SENTINEL = "null"

CACHE_KEY_LENGTH = 12
COORDINATE_CHARS = 12


def compute_cache_key(url: str) -> str:
    """
    Fingerprint a fully built query URL for the cache.

    Returns the first 12 hex characters of the SHA-1 digest, so identical
    queries always share an entry.
    """
    return sha1(url.encode()).hexdigest()[:CACHE_KEY_LENGTH]


def parse_coordinate(value: Any) -> float:
    """Parse a provider coordinate, keeping only its first 12 characters."""
    return float(str(value)[:COORDINATE_CHARS])


def is_unset(value: Any) -> bool:
    """True for values the CRM treats as 'not filled in'."""
    return value is None or value == "" or value == NULL_SENTINEL


class GeocodeStatus(StrEnum):
    """Outcome of a single provider lookup."""
    OK = "ok"
    NO_QUERYABLE_DATA = "no_queryable_data"
    EMPTY_RESULT = "empty_result"
    UNEXPECTED_SHAPE = "unexpected_shape"
    HTTP_STATUS_ERROR = "http_status_error"
    RATE_LIMITED = "rate_limited"
    INVALID_JSON = "invalid_json"
    TRANSPORT_ERROR = "transport_error"


# Statuses copied into the record's geo_code_error field
SURFACED_STATUSES = frozenset({
    GeocodeStatus.HTTP_STATUS_ERROR,
    GeocodeStatus.RATE_LIMITED,
    GeocodeStatus.INVALID_JSON,
    GeocodeStatus.TRANSPORT_ERROR,
})


@dataclass(frozen=True)
class GeocodeError:
    """Details of a failed lookup."""
    status: GeocodeStatus
    message: str
    http_status: Optional[int] = None
    body_snippet: str = ""


@dataclass(frozen=True)
class AdministrativeMatch:
    """Directory identifiers resolved from a provider response."""
    country_id: Optional[int] = None
    state_province_id: Optional[int] = None
    county_id: Optional[int] = None


@dataclass(frozen=True)
class AddressComponents:
    """
    The provider's structured address breakdown.

    Only the fields used for directory reconciliation are kept; anything
    else in the provider's ``address`` object is ignored.
    """
    country_code: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None
    city: Optional[str] = None
    town: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "AddressComponents":
        if not isinstance(data, Mapping):
            return cls()

        def text(key: str) -> Optional[str]:
            value = data.get(key)
            return str(value) if value not in (None, "") else None

        return cls(
            country_code=text("country_code"),
            state=text("state"),
            county=text("county"),
            city=text("city"),
            town=text("town"),
        )

    def county_candidate(self) -> Optional[str]:
        """County name, falling back to city then town."""
        return self.county or self.city or self.town


@dataclass(frozen=True)
class GeocodeResult:
    """
    The result of one provider lookup.

    A result without coordinates and without an error is "empty": the
    provider answered but had no usable match.
    """
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    country_id: Optional[int] = None
    state_province_id: Optional[int] = None
    county_id: Optional[int] = None
    status: GeocodeStatus = GeocodeStatus.EMPTY_RESULT
    error: Optional[GeocodeError] = None
    from_cache: bool = False

    @classmethod
    def failure(cls, error: GeocodeError) -> "GeocodeResult":
        return cls(status=error.status, error=error)

    @classmethod
    def found(
        cls,
        latitude: float,
        longitude: float,
        match: AdministrativeMatch,
        from_cache: bool = False,
    ) -> "GeocodeResult":
        return cls(
            latitude=latitude,
            longitude=longitude,
            country_id=match.country_id,
            state_province_id=match.state_province_id,
            county_id=match.county_id,
            status=GeocodeStatus.OK,
            from_cache=from_cache,
        )

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def is_empty(self) -> bool:
        return not self.has_coordinates() and self.error is None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None or self.error.status not in SURFACED_STATUSES:
            return None
        return self.error.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage/serialization."""
        if self.error is not None:
            return {"error": self.error.message}
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "country_id": self.country_id,
            "state_province_id": self.state_province_id,
            "county_id": self.county_id,
        }


class AddressRecord(BaseModel):
    """
    An address as stored by the CRM, enriched in place by the pipeline.

    Unset values are ``None``. The CRM's ``"null"`` sentinel and empty
    strings are only understood (and produced) at the value-mapping
    boundary, see :meth:`from_values` and :meth:`enrichment_values`.
    Unknown keys are kept so a record can be written back untouched.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    street_address: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("street_address", "street")
    )
    city: Optional[str] = None
    state_province: Optional[str] = None
    state_province_id: Optional[int] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    country_id: Optional[int] = None
    county_id: Optional[int] = None

    geo_code_1: Optional[float] = None
    geo_code_2: Optional[float] = None
    geo_code_error: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _sentinel_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
        return None if is_unset(value) else value

    @classmethod
    def from_values(cls, values: Mapping[str, Any]) -> "AddressRecord":
        """Read a CRM value mapping, raising AddressValidationError on bad data."""
        try:
            return cls.model_validate(dict(values))
        except ValidationError as exc:
            raise AddressValidationError.from_validation_error(exc) from exc

    def enrichment_values(self, include_regions: bool = True) -> dict[str, Any]:
        """
        Fields written by the pipeline, rendered for the CRM.

        Unset coordinates and identifiers become the ``"null"`` sentinel;
        ``geo_code_error`` is only included when there is one. With
        ``include_regions`` off only the coordinates are rendered.
        """
        names = ["geo_code_1", "geo_code_2"]
        if include_regions:
            names += ["state_province_id", "county_id", "country_id"]

        values: dict[str, Any] = {}
        for name in names:
            value = getattr(self, name)
            values[name] = NULL_SENTINEL if value is None else value
        if self.geo_code_error is not None:
            values["geo_code_error"] = self.geo_code_error
        return values
