from hashlib import sha1

import pytest
import requests

from osm_geocoding.geocoders import NominatimClient, build_query_url
from osm_geocoding.models import GeocodeStatus, compute_cache_key
from osm_geocoding.resolver import ResponseResolver

from conftest import BASE_URL, BERLIN_RESPONSE, CountingLimiter, make_response

PARAMS = {"street": "Unter den Linden 1", "city": "Berlin", "addressdetails": "1"}


def test_query_url_is_urlencoded():
    url = build_query_url(BASE_URL, PARAMS)

    assert url == (
        f"{BASE_URL}?format=json&street=Unter+den+Linden+1&city=Berlin&addressdetails=1"
    )


def test_cache_key_is_truncated_sha1_of_url():
    url = build_query_url(BASE_URL, PARAMS)
    key = compute_cache_key(url)

    assert key == sha1(url.encode()).hexdigest()[:12]
    assert len(key) == 12


def test_lookup_returns_coordinates_and_region_ids(client, session, cache):
    session.queue(make_response(200, BERLIN_RESPONSE))

    result = client.lookup(BASE_URL, PARAMS)

    assert result.status == GeocodeStatus.OK
    assert result.latitude == pytest.approx(52.520001234)
    assert result.longitude == pytest.approx(13.404954)
    assert result.country_id == 42
    assert result.state_province_id == 7
    assert result.error is None
    assert cache.get(compute_cache_key(build_query_url(BASE_URL, PARAMS))) == BERLIN_RESPONSE


def test_coordinates_keep_first_twelve_characters(client, session):
    session.queue(make_response(200, [{"lat": "52.52000123456789", "lon": "-0.1234567890123", "address": {}}]))

    result = client.lookup(BASE_URL, {"q": "x"})

    assert result.latitude == 52.520001234
    assert result.longitude == -0.123456789


def test_second_lookup_is_served_from_cache(client, session):
    session.queue(make_response(200, BERLIN_RESPONSE))

    first = client.lookup(BASE_URL, PARAMS)
    second = client.lookup(BASE_URL, PARAMS)

    assert len(session.calls) == 1
    assert second.from_cache is True
    assert second.to_dict() == first.to_dict()


def test_user_agent_identifies_installation(client, session):
    session.queue(make_response(200, []))

    client.lookup(BASE_URL, PARAMS)

    assert session.calls[0]["headers"] == {"User-Agent": "osm-geocoding instance (abc123)"}


def test_empty_result_is_cached_without_error(client, session):
    session.queue(make_response(200, []))

    first = client.lookup(BASE_URL, PARAMS)
    second = client.lookup(BASE_URL, PARAMS)

    assert first.is_empty()
    assert first.status == GeocodeStatus.EMPTY_RESULT
    assert second.is_empty()
    assert len(session.calls) == 1


def test_rate_limit_is_reported_and_not_cached(client, session):
    session.queue(make_response(429, text="Too Many Requests"), make_response(200, []))

    result = client.lookup(BASE_URL, PARAMS)
    client.lookup(BASE_URL, PARAMS)

    assert result.status == GeocodeStatus.RATE_LIMITED
    assert result.error_message == "OVER_QUERY_LIMIT"
    assert result.error.http_status == 429
    assert len(session.calls) == 2


def test_other_status_codes_are_invalid_response_errors(client, session):
    session.queue(make_response(503, text="Service Unavailable"))

    result = client.lookup(BASE_URL, PARAMS)

    assert result.status == GeocodeStatus.HTTP_STATUS_ERROR
    assert result.error_message == "Geocoding failed, invalid response code 503"
    assert not result.has_coordinates()


def test_invalid_json_is_reported_and_not_cached(client, session, cache):
    session.queue(make_response(200, text="<html>maintenance</html>"), make_response(200, BERLIN_RESPONSE))

    broken = client.lookup(BASE_URL, PARAMS)
    recovered = client.lookup(BASE_URL, PARAMS)

    assert broken.status == GeocodeStatus.INVALID_JSON
    assert "<html>maintenance</html>" in broken.error_message
    assert "Linden" not in broken.error_message
    assert recovered.status == GeocodeStatus.OK
    assert len(session.calls) == 2


def test_bare_json_scalar_is_invalid(client, session, cache):
    session.queue(make_response(200, text="null"))

    result = client.lookup(BASE_URL, PARAMS)

    assert result.status == GeocodeStatus.INVALID_JSON
    assert len(cache) == 0


def test_empty_json_object_is_cached_as_empty_result(client, session):
    session.queue(make_response(200, {}))

    first = client.lookup(BASE_URL, PARAMS)
    second = client.lookup(BASE_URL, PARAMS)

    assert first.status == GeocodeStatus.EMPTY_RESULT
    assert first.error is None
    assert second.from_cache is True
    assert len(session.calls) == 1


def test_json_object_with_content_is_unexpected_shape(client, session, cache):
    session.queue(make_response(200, {"error": "Unable to geocode"}))

    result = client.lookup(BASE_URL, PARAMS)

    assert result.status == GeocodeStatus.UNEXPECTED_SHAPE
    assert result.error is None
    assert result.is_empty()
    assert len(cache) == 0


def test_result_without_coordinates_is_not_an_error(client, session, cache):
    session.queue(make_response(200, [{"display_name": "somewhere"}]))

    result = client.lookup(BASE_URL, PARAMS)

    assert result.status == GeocodeStatus.UNEXPECTED_SHAPE
    assert result.error is None
    assert result.is_empty()
    assert len(cache) == 0


def test_transport_errors_are_classified(client, session):
    session.queue(requests.ConnectionError("connection refused"))

    result = client.lookup(BASE_URL, PARAMS)

    assert result.status == GeocodeStatus.TRANSPORT_ERROR
    assert result.error_message == "Geocoding failed, request error (ConnectionError)"


def test_rate_limiter_only_applies_to_network_requests(cache, directory, session):
    limiter = CountingLimiter()
    client = NominatimClient(
        cache=cache,
        resolver=ResponseResolver(directory),
        user_agent="test",
        rate_limiter=limiter,
        session=session,
    )
    session.queue(make_response(200, BERLIN_RESPONSE))

    client.lookup(BASE_URL, PARAMS)
    client.lookup(BASE_URL, PARAMS)

    assert limiter.waits == 1


def test_get_coordinates_sends_free_form_query(client, session):
    session.queue(make_response(200, BERLIN_RESPONSE))

    result = client.get_coordinates("Unter den Linden 1, Berlin")

    assert session.calls[0]["url"] == (
        f"{BASE_URL}?format=json&q=Unter+den+Linden+1%2C+Berlin&addressdetails=1"
    )
    assert result.country_id == 42
