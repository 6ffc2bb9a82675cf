# SPDX-License-Identifier: MIT
"""Pytest configuration and fixtures for chronomap tests."""

import os
from typing import Any, Callable

import pytest

# Set test environment variables before importing chronomap
os.environ.setdefault("CHRONOMAP_API_BASE_URL", "http://test/v1")
os.environ.setdefault("CHRONOMAP_API_MAX_RETRIES", "1")

import httpx  # noqa: E402

from chronomap.transport import ApiClient  # noqa: E402

TEST_BASE_URL = "http://test/v1"


def square(min_lng: float, min_lat: float, size: float = 1.0) -> dict:
    """GeoJSON polygon for an axis-aligned square."""
    return {
        "type": "Polygon",
        "coordinates": [[
            [min_lng, min_lat],
            [min_lng + size, min_lat],
            [min_lng + size, min_lat + size],
            [min_lng, min_lat + size],
            [min_lng, min_lat],
        ]],
    }


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def make_square() -> Callable:
    return square


@pytest.fixture
def provinces_geojson() -> dict:
    """Three provinces: p1 and p2 share an edge, p3 lies far away."""
    return {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "properties": {"id": "p1"}, "geometry": square(10, 10, 2)},
            {"type": "Feature", "properties": {"id": "p2"}, "geometry": square(12, 10, 2)},
            {"type": "Feature", "id": "p3", "properties": {}, "geometry": square(30, 30, 1)},
        ],
    }


@pytest.fixture
def sample_metadata_payload(provinces_geojson: dict) -> dict:
    """Combined metadata payload as returned by /metadata."""
    return {
        "provinces": provinces_geojson,
        "ruler": {
            "r1": ["Kingdom One", "#f00", "Kingdom of One"],
            "r2": ["Empire Two", "#0f0"],
        },
        "culture": {
            "c1": ["Culture One", "#00f", "Culture One"],
        },
        "religion": {
            "catholicism": ["Catholicism", "#fff", "Catholic Church", 0, "christianity"],
            "sunni": ["Sunni", "#0a0", "Sunni Islam", 0, "islam"],
            "animism": ["Animism", "#999"],
        },
        "religionGeneral": {
            "christianity": ["Christianity", "#ccc", "Christianity"],
            "islam": ["Islam", "#0b0", "Islam"],
        },
    }


@pytest.fixture
def sample_area_payload() -> dict:
    """Area snapshot for year 1000 in wire format."""
    return {
        "p1": ["r1", "c1", "catholicism", "cap1", 1000],
        "p2": ["r1", "c2", "catholicism", None, 2000],
        "p3": ["r2", "c1", "sunni", None, 500],
    }


@pytest.fixture
def sample_area_payload_1100() -> dict:
    """Area snapshot for year 1100: r2 has taken p2."""
    return {
        "p1": ["r1", "c1", "catholicism", "cap1", 1500],
        "p2": ["r2", "c2", "sunni", None, 2500],
        "p3": ["r2", "c1", "sunni", None, 700],
    }


@pytest.fixture
def sample_markers_payload() -> list:
    """Marker records as returned by /markers."""
    return [
        {"_id": "m1", "name": "Battle of Somewhere", "type": "b", "year": 1000, "coo": [10.5, 11.0], "wiki": "Battle_of_Somewhere"},
        {"_id": "m2", "name": "Some Scholar", "type": "s", "year": 1000, "coo": [20.0, 20.0]},
        {"_id": "m3", "name": "Lost City", "type": "c", "year": 1000},
        {"_id": "m4", "name": "Capital Town", "type": "ca", "year": 1000, "coo": [12.5, 11.5]},
        {"_id": "m5", "name": "Great Flood", "type": "e", "year": 1000, "coo": [31.0, 30.5], "end": 1001},
    ]


@pytest.fixture
def api_routes(
    sample_metadata_payload: dict,
    sample_area_payload: dict,
    sample_area_payload_1100: dict,
    sample_markers_payload: list,
) -> dict[str, Any]:
    """Path -> JSON body served by the default mock API."""
    return {
        "/v1/metadata": sample_metadata_payload,
        "/v1/areas/1000": sample_area_payload,
        "/v1/areas/1100": sample_area_payload_1100,
        "/v1/markers": sample_markers_payload,
    }


@pytest.fixture
def make_api() -> Callable:
    """
    Factory for an ApiClient backed by httpx.MockTransport.

    The handler may be sync or async. Every request is recorded on
    `client.requests`.
    """

    def _make(handler: Callable) -> ApiClient:
        requests: list[httpx.Request] = []

        async def _recording(request: httpx.Request):
            requests.append(request)
            response = handler(request)
            if not isinstance(response, httpx.Response):
                response = await response
            return response

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(_recording))
        client = ApiClient(base_url=TEST_BASE_URL, http_client=http_client)
        client.requests = requests
        return client

    return _make


@pytest.fixture
def api(make_api: Callable, api_routes: dict) -> ApiClient:
    """Mock API serving the sample payloads; unknown paths return 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = api_routes.get(request.url.path)
        if body is None:
            return httpx.Response(404, json={"detail": "Not found"})
        return httpx.Response(200, json=body)

    return make_api(handler)


@pytest.fixture
def session(api: ApiClient):
    """MapSession wired to the mock API."""
    from chronomap.session import MapSession

    return MapSession(client=api)
