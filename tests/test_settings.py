from hashlib import sha1

from osm_geocoding.settings import GeocodingSettings


def test_defaults_point_at_public_nominatim():
    settings = GeocodingSettings(_env_file=None)

    assert settings.base_url == "https://nominatim.openstreetmap.org/search"
    assert settings.timeout is None


def test_app_name_hashes_site_identity():
    settings = GeocodingSettings(_env_file=None, site_name="Example e.V.", site_key="k3y")

    assert settings.app_name == sha1(b"Example e.V.k3y").hexdigest()[:12]
    assert "Example" not in settings.user_agent


def test_api_key_is_preferred(monkeypatch):
    monkeypatch.setenv("OSM_GEOCODING_API_KEY", "my-key")
    monkeypatch.setenv("OSM_GEOCODING_REQUESTS_PER_SECOND", "1")

    settings = GeocodingSettings(_env_file=None)

    assert settings.user_agent == "osm-geocoding instance (my-key)"
    assert settings.requests_per_second == 1.0
