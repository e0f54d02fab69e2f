from hashlib import sha1
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class GeocodingSettings(BaseSettings):
    # Provider
    server: str = "nominatim.openstreetmap.org"
    uri: str = "/search"
    timeout: Optional[float] = None  # None keeps the transport default

    # Installation identity sent in the User-Agent header
    api_key: Optional[str] = None
    site_name: str = ""
    site_key: str = ""
    user_agent_prefix: str = "osm-geocoding instance"

    # Request building
    use_raw_state_name: bool = False

    # Batch runs
    requests_per_second: Optional[float] = None
    max_workers: int = 4

    # Persistence
    cache_path: Optional[Path] = None
    directory_path: Optional[Path] = None
    cache_ttl_days: Optional[int] = None

    model_config = SettingsConfigDict(
        env_prefix="OSM_GEOCODING_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def base_url(self) -> str:
        return f"https://{self.server}{self.uri}"

    @property
    def app_name(self) -> str:
        """Identity for the User-Agent header.

        The configured API key when set, otherwise a short hash of the site
        name and key. The plain site name is never sent alongside the
        addresses being looked up.
        """
        if self.api_key:
            return self.api_key
        return sha1(f"{self.site_name}{self.site_key}".encode()).hexdigest()[:12]

    @property
    def user_agent(self) -> str:
        return f"{self.user_agent_prefix} ({self.app_name})"


settings = GeocodingSettings()
