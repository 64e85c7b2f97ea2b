import time

import pytest

import auth_middleware
from app import SearchStack, _parse_coordinate, create_app
from config import Config
from conftest import TOKYO, north_of, make_place
from placesearch import (
    ErrorKind,
    PlaceOrigin,
    RankedResultSet,
    SearchFailed,
    WhooshPlaceIndex
)


class SearchTestConfig(Config):
    PAGE_SIZE = 2
    DEBOUNCE_SECONDS = 0
    LOAD_MORE_DELAY_SECONDS = 0


class FakeRanker:
    def __init__(self, places=None, error=None):
        self.places = places or []
        self.error = error
        self.calls = []

    def run(self, query, reference, token=None):
        self.calls.append((query, reference))
        if self.error:
            raise self.error
        return RankedResultSet(self.places, query=query, reference=reference)


class FakeStorage:
    available = True

    def __init__(self, places):
        self.places = places

    def all_places(self):
        return iter(self.places)


def ramen_places(count=3):
    return [make_place(f"Ramen {i}", coordinate=north_of(TOKYO, i * 100), database_id=f"DB-{i}")
            for i in range(count)]


def client_for(stack):
    app = create_app(config=SearchTestConfig, stack=stack)
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def ranker():
    return FakeRanker(ramen_places())


@pytest.fixture
def client(ranker):
    return client_for(SearchStack(ranker=ranker, providers={"whoosh": True, "mapbox": True}))


def wait_for_status(client, session_id, statuses, timeout=5):
    deadline = time.time() + timeout
    while time.time() < deadline:
        payload = client.get(f'/search/sessions/{session_id}').get_json()
        if payload["state"]["status"] in statuses:
            return payload
        time.sleep(0.01)
    raise AssertionError(f"session never reached {statuses}")


def test_parse_coordinate_defaults_and_validation():
    assert _parse_coordinate({}, SearchTestConfig) == (Config.DEFAULT_LATITUDE, Config.DEFAULT_LONGITUDE)
    assert _parse_coordinate({'latitude': '35.5', 'longitude': '139.5'}, SearchTestConfig) == (35.5, 139.5)
    with pytest.raises(ValueError):
        _parse_coordinate({'latitude': '35.5'}, SearchTestConfig)
    with pytest.raises(ValueError):
        _parse_coordinate({'latitude': '95', 'longitude': '139'}, SearchTestConfig)
    with pytest.raises(ValueError):
        _parse_coordinate({'latitude': 'north', 'longitude': '139'}, SearchTestConfig)


def test_index_and_health(client):
    assert client.get('/').get_json()["status"] == "running"

    health = client.get('/health').get_json()
    assert health["status"] == "ok"
    assert health["providers"] == {"whoosh": True, "mapbox": True}
    assert health["sessions"] == 0


def test_health_is_degraded_without_ranker():
    client = client_for(SearchStack(providers={"whoosh": False}))
    assert client.get('/health').get_json()["status"] == "degraded"
    assert client.get('/search/places?query=ramen').status_code == 503
    assert client.post('/search/sessions').status_code == 503


def test_one_shot_search_returns_first_page(client, ranker):
    response = client.get('/search/places?query=ramen&latitude=35.7&longitude=139.7')

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["total"] == 3
    assert [place["name"] for place in payload["results"]] == ["Ramen 0", "Ramen 1"]
    assert payload["results"][0]["source"] == PlaceOrigin.DATABASE.value
    assert payload["results"][0]["dbPlaceId"] == "DB-0"
    assert ranker.calls == [("ramen", (35.7, 139.7))]


@pytest.mark.parametrize("query_string", ["", "query=", "query=%20%20", "query=ramen&latitude=35"])
def test_one_shot_search_rejects_bad_requests(client, query_string):
    assert client.get(f'/search/places?{query_string}').status_code == 400


def test_one_shot_search_reports_provider_failure():
    ranker = FakeRanker(error=SearchFailed("both down", kind=ErrorKind.PROVIDER_UNAVAILABLE))
    response = client_for(SearchStack(ranker=ranker)).get('/search/places?query=ramen')

    assert response.status_code == 502
    assert response.get_json() == {"error": "Search failed, retry", "kind": "provider_unavailable"}


def test_session_flow(client, ranker):
    created = client.post('/search/sessions')
    assert created.status_code == 201
    session_id = created.get_json()["sessionId"]

    submitted = client.post(f'/search/sessions/{session_id}/query', json={"query": "ramen"})
    assert submitted.status_code == 202

    payload = wait_for_status(client, session_id, {"completed"})
    assert payload["state"]["total"] == 3
    assert [place["name"] for place in payload["results"]] == ["Ramen 0", "Ramen 1"]
    assert ranker.calls == [("ramen", TOKYO)]

    # Reading a completed session acknowledges it
    assert client.get(f'/search/sessions/{session_id}').get_json()["state"]["status"] == "idle"

    more = client.post(f'/search/sessions/{session_id}/more').get_json()
    assert [place["name"] for place in more["appended"]] == ["Ramen 2"]
    assert more["state"]["displayed"] == 3
    assert client.post(f'/search/sessions/{session_id}/more').get_json()["appended"] == []

    assert client.delete(f'/search/sessions/{session_id}').status_code == 204
    assert client.get(f'/search/sessions/{session_id}').status_code == 404


def test_session_query_with_location(client, ranker):
    session_id = client.post('/search/sessions').get_json()["sessionId"]
    client.post(f'/search/sessions/{session_id}/query',
                json={"query": "ramen", "latitude": 35.0, "longitude": 135.0})
    wait_for_status(client, session_id, {"completed"})
    assert ranker.calls == [("ramen", (35.0, 135.0))]


def test_session_failure_is_reported():
    ranker = FakeRanker(error=SearchFailed("both down", kind=ErrorKind.PROVIDER_UNAVAILABLE))
    client = client_for(SearchStack(ranker=ranker))
    session_id = client.post('/search/sessions').get_json()["sessionId"]
    client.post(f'/search/sessions/{session_id}/query', json={"query": "ramen"})

    payload = wait_for_status(client, session_id, {"failed"})
    assert payload["state"]["lastError"] == "provider_unavailable"
    assert payload["results"] == []


@pytest.mark.parametrize("body", [{}, {"query": 42}, {"query": "ramen", "latitude": 35.0}])
def test_session_query_validation(client, body):
    session_id = client.post('/search/sessions').get_json()["sessionId"]
    assert client.post(f'/search/sessions/{session_id}/query', json=body).status_code == 400


def test_unknown_session(client):
    assert client.get('/search/sessions/nope').status_code == 404
    assert client.post('/search/sessions/nope/query', json={"query": "x"}).status_code == 404
    assert client.post('/search/sessions/nope/more').status_code == 404
    assert client.delete('/search/sessions/nope').status_code == 404


def test_reindex_requires_admin(client, monkeypatch):
    assert client.post('/admin/reindex').status_code == 401

    monkeypatch.setattr(auth_middleware.auth, 'verify_id_token', lambda token: {"uid": "user-1"})
    response = client.post('/admin/reindex', headers={"Authorization": "Bearer token"})
    assert response.status_code == 403


def test_reindex_rebuilds_from_firestore(tmp_path, monkeypatch):
    monkeypatch.setattr(auth_middleware.auth, 'verify_id_token', lambda token: {"uid": "admin-1", "admin": True})
    index = WhooshPlaceIndex(index_path=str(tmp_path / "index"))
    client = client_for(SearchStack(ranker=FakeRanker(), index=index, storage=FakeStorage(ramen_places(4))))

    response = client.post('/admin/reindex', headers={"Authorization": "Bearer admin-token"})

    assert response.status_code == 200
    assert response.get_json() == {"indexed": 4}
    assert index.doc_count() == 4


def test_reindex_unavailable_without_index(monkeypatch):
    monkeypatch.setattr(auth_middleware.auth, 'verify_id_token', lambda token: {"uid": "admin-1", "admin": True})
    client = client_for(SearchStack(ranker=FakeRanker()))
    assert client.post('/admin/reindex', headers={"Authorization": "Bearer t"}).status_code == 503


@pytest.mark.parametrize("header", ["Token admin-token", "Bearer", "Bearer a b"])
def test_malformed_authorization_header_is_anonymous(client, monkeypatch, header):
    monkeypatch.setattr(auth_middleware.auth, 'verify_id_token', lambda token: {"uid": "admin-1", "admin": True})
    assert client.post('/admin/reindex', headers={"Authorization": header}).status_code == 401
    assert client.get('/search/places?query=ramen', headers={"Authorization": header}).status_code == 200


def test_session_registry_uses_configured_limits(ranker):
    class TinyConfig(SearchTestConfig):
        MAX_SESSIONS = 2

    app = create_app(config=TinyConfig, stack=SearchStack(ranker=ranker))
    client = app.test_client()
    ids = [client.post('/search/sessions').get_json()["sessionId"] for _ in range(3)]

    assert len(app.config['SEARCH_SESSIONS']) == 2
    assert client.get(f'/search/sessions/{ids[0]}').status_code == 404
