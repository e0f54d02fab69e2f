"""
Abstract base classes for the pipeline's collaborators.

The cache and the administrative directory are owned by the host
application; the pipeline only consumes them through these interfaces.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class CacheGateway(ABC):
    """
    Abstract key -> value store for decoded provider responses.

    Keys are 12-character lowercase hex fingerprints of the query URL.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a decoded response."""
        pass


class AdministrativeDirectory(ABC):
    """
    Abstract store of countries, states/provinces and counties.

    All lookups are exact matches and return the first matching id, or
    None when nothing matches.
    """

    @abstractmethod
    def find_country_by_iso_code(self, iso_code: str) -> Optional[int]:
        pass

    @abstractmethod
    def find_state_by_name(self, name: str) -> Optional[int]:
        pass

    @abstractmethod
    def find_county_by_name(self, name: str) -> Optional[int]:
        pass

    @abstractmethod
    def create_county(self, state_province_id: int, name: str) -> int:
        """Create a county under the given state and return its id."""
        pass

    @abstractmethod
    def find_state_name_by_id(self, state_province_id: int) -> Optional[str]:
        """Canonical state/province name for an id."""
        pass

    @abstractmethod
    def find_state_name_by_abbreviation(self, abbreviation: str) -> Optional[str]:
        """Canonical state/province name for an abbreviation such as 'BY'."""
        pass


class RateLimiter(ABC):
    """
    Abstract base for rate limiters.

    Called before every network request; cache hits are never throttled.
    """

    @abstractmethod
    def wait(self) -> None:
        """Block until it's safe to make another request."""
        pass
