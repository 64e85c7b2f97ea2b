import pytest
import requests
from googlemaps import exceptions as googlemaps_exceptions

from conftest import TOKYO, north_of, east_of
from placesearch import (
    GooglePlacesSearchProvider,
    MapboxSearchProvider,
    PlaceOrigin,
    PlacesCache,
    ProviderUnavailable
)
from placesearch.mapbox_provider import MAPBOX_MAX_LIMIT


class DummyResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class DummySession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append({"url": url, "params": params, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def feature(mapbox_id, name, coordinate, geometry_only=False, **properties):
    props = {"mapbox_id": mapbox_id, "name": name, **properties}
    if not geometry_only:
        props["coordinates"] = {"latitude": coordinate.latitude, "longitude": coordinate.longitude}
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [coordinate.longitude, coordinate.latitude]},
        "properties": props
    }


def provider_with(payload=None, status_code=200, error=None):
    session = DummySession(DummyResponse(payload, status_code, text="error body"), error)
    return MapboxSearchProvider("pk.test", language="ja", timeout=3, session=session), session


def test_mapbox_request_parameters():
    provider, session = provider_with({"features": []})
    provider.search("ramen", TOKYO, 10000, 50)

    request = session.requests[0]
    assert request["url"] == "https://api.mapbox.com/search/searchbox/v1/forward"
    assert request["timeout"] == 3
    params = request["params"]
    assert params["q"] == "ramen"
    assert params["access_token"] == "pk.test"
    assert params["limit"] == MAPBOX_MAX_LIMIT
    assert params["language"] == "ja"
    assert params["types"] == "poi"
    assert params["proximity"] == f"{TOKYO.longitude},{TOKYO.latitude}"

    min_lon, min_lat, max_lon, max_lat = [float(v) for v in params["bbox"].split(",")]
    assert min_lon < TOKYO.longitude < max_lon
    assert min_lat < TOKYO.latitude < max_lat


def test_mapbox_features_become_candidates():
    payload = {"features": [
        feature("mb-1", "Fuunji", north_of(TOKYO, 500), full_address="2-14-3 Yoyogi",
                poi_category=["ramen", "restaurant"],
                metadata={"phone": "+81 3-1234-5678", "website": "https://fuunji.example"},
                context={"place": {"name": "Shibuya"}}),
        feature("mb-2", "Afuri", east_of(TOKYO, 900), geometry_only=True),
    ]}
    provider, _ = provider_with(payload)

    results = provider.search("ramen", TOKYO, 10000, 5)

    assert [place.mapbox_id for place in results] == ["mb-1", "mb-2"]
    fuunji = results[0]
    assert fuunji.origin is PlaceOrigin.MAPBOX
    assert fuunji.exists_in_database is False
    assert fuunji.database_id is None
    assert fuunji.formatted_address == "2-14-3 Yoyogi"
    assert fuunji.categories == ["ramen", "restaurant"]
    assert fuunji.additional_data == {"phone": "+81 3-1234-5678", "website": "https://fuunji.example",
                                      "city": "Shibuya"}
    assert results[1].coordinate == pytest.approx(east_of(TOKYO, 900))


def test_mapbox_drops_repeats_far_places_and_broken_features():
    payload = {"features": [
        feature("mb-1", "Fuunji", north_of(TOKYO, 500)),
        feature("mb-1", "Fuunji again", north_of(TOKYO, 600)),
        feature("mb-far", "Far away", north_of(TOKYO, 50000)),
        {"properties": {"name": "No id"}},
        {"properties": {"mapbox_id": "mb-nowhere", "name": "No coordinates"}},
    ]}
    provider, _ = provider_with(payload)
    assert [place.mapbox_id for place in provider.search("ramen", TOKYO, 10000, 5)] == ["mb-1"]


def test_mapbox_respects_max_results():
    payload = {"features": [feature(f"mb-{i}", f"Place {i}", north_of(TOKYO, i * 10)) for i in range(5)]}
    provider, session = provider_with(payload)
    assert len(provider.search("place", TOKYO, 10000, 3)) == 3
    assert session.requests[0]["params"]["limit"] == 3


@pytest.mark.parametrize("kwargs", [
    {"error": requests.exceptions.ConnectionError("no route")},
    {"error": requests.exceptions.Timeout("slow")},
    {"payload": {"message": "Not Authorized"}, "status_code": 401},
    {"payload": None},
])
def test_mapbox_failures_are_provider_unavailable(kwargs):
    provider, _ = provider_with(**kwargs)
    with pytest.raises(ProviderUnavailable):
        provider.search("ramen", TOKYO, 10000, 5)


def test_mapbox_results_are_cached():
    provider, session = provider_with({"features": [feature("mb-1", "Fuunji", north_of(TOKYO, 500))]})
    first = provider.search("Ramen", TOKYO, 10000, 5)
    second = provider.search("  ramen ", TOKYO, 10000, 5)

    assert len(session.requests) == 1
    assert [place.mapbox_id for place in second] == [place.mapbox_id for place in first]


class DummyGoogleClient:
    def __init__(self, response=None, error=None):
        self.response = response or {"results": []}
        self.error = error
        self.calls = []

    def places(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response


def google_result(place_id, name, coordinate, **extra):
    return {
        "place_id": place_id,
        "name": name,
        "geometry": {"location": {"lat": coordinate.latitude, "lng": coordinate.longitude}},
        **extra
    }


def test_google_text_search():
    client = DummyGoogleClient({"results": [
        google_result("g-1", "Ichiran Shibuya", north_of(TOKYO, 300), formatted_address="1-22-7 Jinnan",
                      types=["restaurant"], rating=4.2),
        google_result("g-far", "Ichiran Hakata", north_of(TOKYO, 800000)),
        {"place_id": "g-broken", "name": "No geometry"},
        google_result("g-2", "Ichiran Shinjuku", north_of(TOKYO, 4000)),
    ]})
    provider = GooglePlacesSearchProvider(client=client, language="ja")

    results = provider.search("ichiran", TOKYO, 10000.0, 50)

    assert client.calls == [{"query": "ichiran", "location": (TOKYO.latitude, TOKYO.longitude),
                             "radius": 10000, "language": "ja"}]
    assert [place.google_places_id for place in results] == ["g-1", "g-2"]
    assert results[0].origin is PlaceOrigin.GOOGLE
    assert results[0].exists_in_database is False
    assert results[0].categories == ["restaurant"]
    assert results[0].additional_data == {"rating": 4.2}


def test_google_limit_and_cache():
    client = DummyGoogleClient({"results": [
        google_result(f"g-{i}", f"Place {i}", north_of(TOKYO, i * 100)) for i in range(4)
    ]})
    provider = GooglePlacesSearchProvider(client=client)

    assert len(provider.search("place", TOKYO, 10000, 2)) == 2
    assert len(provider.search("place", TOKYO, 10000, 2)) == 2
    assert len(client.calls) == 1


@pytest.mark.parametrize("error", [
    googlemaps_exceptions.ApiError("OVER_QUERY_LIMIT"),
    googlemaps_exceptions.TransportError("connection reset"),
    googlemaps_exceptions.Timeout(),
])
def test_google_failures_are_provider_unavailable(error):
    provider = GooglePlacesSearchProvider(client=DummyGoogleClient(error=error))
    with pytest.raises(ProviderUnavailable):
        provider.search("ichiran", TOKYO, 10000, 5)


def test_cache_expires():
    cache = PlacesCache(cache_duration=0)
    cache.set("mapbox", "ramen", TOKYO, 1000, 5, [])
    assert cache.get("mapbox", "ramen", TOKYO, 1000, 5) is None


def test_cache_keys_separate_providers_and_areas():
    cache = PlacesCache()
    cache.set("mapbox", "ramen", TOKYO, 1000, 5, [])
    assert cache.get("mapbox", "RAMEN", TOKYO, 1000, 5) == []
    assert cache.get("google", "ramen", TOKYO, 1000, 5) is None
    assert cache.get("mapbox", "ramen", north_of(TOKYO, 5000), 1000, 5) is None
    assert cache.get("mapbox", "ramen", TOKYO, 2000, 5) is None
    cache.clear()
    assert cache.get("mapbox", "ramen", TOKYO, 1000, 5) is None


def test_cache_purges_expired_entries_on_write():
    cache = PlacesCache(cache_duration=0)
    for i in range(50):
        cache.set("mapbox", f"query {i}", TOKYO, 1000, 5, [])
    assert len(cache.cache) == 1


def test_cache_evicts_oldest_entry_when_full():
    cache = PlacesCache(max_entries=3)
    for query in ["a", "b", "c"]:
        cache.set("google", query, TOKYO, 1000, 5, [])
    cache.set("google", "a", TOKYO, 1000, 5, [])
    cache.set("google", "d", TOKYO, 1000, 5, [])

    assert len(cache.cache) == 3
    assert cache.get("google", "b", TOKYO, 1000, 5) is None
    assert cache.get("google", "a", TOKYO, 1000, 5) == []
    assert cache.get("google", "d", TOKYO, 1000, 5) == []
