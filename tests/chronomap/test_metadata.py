# SPDX-License-Identifier: MIT
"""Tests for the metadata store."""

import httpx
import pytest

from chronomap.errors import ErrorState, TransportError
from chronomap.metadata import MetadataStore
from chronomap.types import FALLBACK_COLOR, Dimension, EntityMetadata, MetadataEntry


@pytest.fixture
def store(api, sample_metadata_payload) -> MetadataStore:
    """Store with the sample metadata already set (no network)."""
    metadata = MetadataStore(api)
    metadata.set_metadata(sample_metadata_payload)
    metadata.set_provinces(sample_metadata_payload["provinces"])
    return metadata


@pytest.mark.anyio
class TestLoadMetadata:
    """Test loading the combined metadata payload."""

    async def test_load(self, api):
        store = MetadataStore(api)
        metadata = await store.load_metadata()

        assert isinstance(metadata, EntityMetadata)
        assert store.metadata is metadata
        assert store.is_loading is False
        assert metadata.ruler["r1"] == MetadataEntry(name="Kingdom One", color="#f00", wiki="Kingdom of One")
        assert metadata.religion["catholicism"].parent == "christianity"
        assert metadata.ruler["r1"].parent is None

    async def test_load_extracts_provinces(self, api):
        store = MetadataStore(api)
        await store.load_metadata()

        assert len(store.territories) == 3
        assert "p1" in store.territories
        assert "p3" in store.territories  # id taken from the feature itself

    async def test_request(self, api):
        store = MetadataStore(api)
        await store.load_metadata()

        assert len(api.requests) == 1
        url = api.requests[0].url
        assert url.path == "/v1/metadata"
        assert url.params["type"] == "g"
        assert url.params["f"] == "provinces,ruler,culture,religion,capital,province,religionGeneral"

    async def test_failure_sets_error(self, make_api):
        client = make_api(lambda request: httpx.Response(500, json={}))
        errors = ErrorState()
        store = MetadataStore(client, errors)

        assert await store.load_metadata() is None
        assert isinstance(errors.error, TransportError)
        assert store.is_loading is False
        assert store.metadata is None

    async def test_non_mapping_payload(self, make_api):
        client = make_api(lambda request: httpx.Response(200, json=["unexpected"]))
        store = MetadataStore(client)
        assert await store.load_metadata() is None
        assert store.metadata is None

    @pytest.mark.parametrize(
        "coordinates",
        [
            [[[0, 0], [1, 1]]],
            [[["a", 0], [1, 0], [1, 1], [0, 0]]],
        ],
    )
    async def test_unbuildable_province_skipped(self, make_api, sample_metadata_payload, coordinates):
        """A province whose ring shapely rejects is dropped; the rest still load."""
        payload = dict(sample_metadata_payload)
        bad = {"type": "Feature", "properties": {"id": "broken"}, "geometry": {"type": "Polygon", "coordinates": coordinates}}
        payload["provinces"] = {
            "type": "FeatureCollection",
            "features": [*sample_metadata_payload["provinces"]["features"], bad],
        }
        errors = ErrorState()
        store = MetadataStore(make_api(lambda request: httpx.Response(200, json=payload)), errors)

        assert await store.load_metadata() is not None
        assert store.is_loading is False
        assert len(store.territories) == 3
        assert "broken" not in store.territories
        assert errors.error is None

    async def test_unparseable_payload_sets_error(self, make_api, mocker):
        mocker.patch("chronomap.metadata.EntityMetadata.from_wire", side_effect=TypeError("bad table"))
        errors = ErrorState()
        store = MetadataStore(make_api(lambda request: httpx.Response(200, json={"ruler": 5})), errors)

        assert await store.load_metadata() is None
        assert store.is_loading is False
        assert store.metadata is None
        assert "Invalid metadata payload" in str(errors.error)


class TestEntityLookups:
    """Test color, name and wiki lookups."""

    def test_color(self, store):
        assert store.get_entity_color("r1", Dimension.RULER) == "#f00"
        assert store.get_entity_color("c1", "culture") == "#00f"

    @pytest.mark.parametrize(
        "value,dimension",
        [
            ("unknown", "ruler"),
            ("", "ruler"),
            ("r1", "population"),
            ("r1", "nonsense"),
        ],
    )
    def test_color_fallback(self, store, value, dimension):
        assert store.get_entity_color(value, dimension) == FALLBACK_COLOR

    def test_color_fallback_without_metadata(self, api):
        assert MetadataStore(api).get_entity_color("r1", "ruler") == FALLBACK_COLOR

    def test_religion_general_color_is_direct(self, store):
        assert store.get_entity_color("christianity", Dimension.RELIGION_GENERAL) == "#ccc"
        assert store.get_entity_color("catholicism", Dimension.RELIGION_GENERAL) == FALLBACK_COLOR

    def test_name(self, store):
        assert store.get_entity_name("r2", "ruler") == "Empire Two"
        assert store.get_entity_name("c2", "culture") is None

    def test_wiki_direct(self, store):
        assert store.get_entity_wiki("r1", "ruler") == "Kingdom of One"
        assert store.get_entity_wiki("r2", "ruler") is None

    def test_religion_general_wiki_two_hop(self, store):
        """religionGeneral wiki takes a religion id and resolves its parent first."""
        assert store.get_entity_wiki("catholicism", "religionGeneral") == "Christianity"

    def test_religion_general_wiki_missing_hop(self, store):
        assert store.get_entity_wiki("animism", "religionGeneral") is None
        assert store.get_entity_wiki("christianity", "religionGeneral") is None

    def test_wiki_url(self, store):
        assert store.wiki_url("r1", "ruler") == "https://en.wikipedia.org/wiki/Kingdom_of_One"
        assert store.wiki_url("r2", "ruler") is None
        assert store.wiki_url("r2", "ruler", fallback="Empire Two") == "https://en.wikipedia.org/wiki/Empire_Two"

    def test_wiki_url_quotes(self, store):
        assert store.wiki_url("x", "ruler", fallback="Café (town)") == "https://en.wikipedia.org/wiki/Caf%C3%A9_%28town%29"


class TestReligionGeneral:
    """Test religion -> general religion resolution."""

    def test_parent(self, store):
        assert store.get_religion_general("catholicism") == "christianity"
        assert store.get_religion_general("sunni") == "islam"

    def test_general_id_unchanged(self, store):
        assert store.get_religion_general("christianity") == "christianity"

    def test_identity_fallback(self, store):
        assert store.get_religion_general("animism") == "animism"
        assert store.get_religion_general("unknown") == "unknown"

    def test_without_metadata(self, api):
        assert MetadataStore(api).get_religion_general("catholicism") == "catholicism"


class TestWireNormalization:
    """Test metadata entry normalization."""

    def test_dict_entries_accepted(self):
        metadata = EntityMetadata.from_wire({"ruler": {"r9": {"name": "Nine", "color": "#999", "wiki": "Nine"}}})
        assert metadata.ruler["r9"].wiki == "Nine"

    def test_malformed_entries_skipped(self):
        metadata = EntityMetadata.from_wire({"ruler": {"a": ["Only name"], "b": None, "c": ["C", "#ccc"]}})
        assert list(metadata.ruler) == ["c"]

    def test_missing_tables_empty(self):
        metadata = EntityMetadata.from_wire({})
        assert metadata.religionGeneral == {}
        assert metadata.table(Dimension.POPULATION) is None
