"""
Data models for the map state core.

Defines the attribute dimensions, viewport and fly-to records, the named
province attribute record (positional tuples exist only at the wire
boundary), territory geometry records, metadata entries, outline and label
outputs, and markers.
"""

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from types import MappingProxyType
from typing import Any

from loguru import logger
from shapely.errors import ShapelyError
from shapely.geometry import MultiPolygon, Polygon

from chronomap import geometry


class Dimension(str, Enum):
    """Attribute axes by which territories are grouped and colored."""

    RULER = "ruler"
    CULTURE = "culture"
    RELIGION = "religion"
    RELIGION_GENERAL = "religionGeneral"
    POPULATION = "population"


# Position of each dimension in the 5-element wire tuple.
# religionGeneral has no column of its own and reads the religion column.
DIMENSION_INDEX: dict[Dimension, int] = {
    Dimension.RULER: 0,
    Dimension.CULTURE: 1,
    Dimension.RELIGION: 2,
    Dimension.RELIGION_GENERAL: 2,
    Dimension.POPULATION: 4,
}

# Dimensions that carry display metadata (name, color, wiki)
METADATA_DIMENSIONS: tuple[Dimension, ...] = (
    Dimension.RULER,
    Dimension.CULTURE,
    Dimension.RELIGION,
    Dimension.RELIGION_GENERAL,
)

FALLBACK_COLOR = "rgba(128, 128, 128, 0.5)"


def parse_dimension(value: Any) -> Dimension | None:
    """Return the Dimension for a value, or None if it is not one."""
    if isinstance(value, Dimension):
        return value
    try:
        return Dimension(value)
    except ValueError:
        return None


def is_finite_number(value: Any) -> bool:
    """True for real ints/floats that are finite (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


# =============================================================================
# Viewport
# =============================================================================


@dataclass
class ViewportState:
    """Camera state describing what portion of the map is visible."""

    latitude: float = 37.0
    longitude: float = 37.0
    zoom: float = 2.5
    min_zoom: float = 2.0
    bearing: float = 0.0
    pitch: float = 0.0
    width: float = 1024.0
    height: float = 768.0

    def to_dict(self) -> dict[str, float]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "zoom": self.zoom,
            "min_zoom": self.min_zoom,
            "bearing": self.bearing,
            "pitch": self.pitch,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class FlyToOptions:
    """A requested animated transition of the viewport."""

    latitude: float
    longitude: float
    zoom: float | None = None
    duration: float = 2000.0  # milliseconds
    bearing: float | None = None
    pitch: float | None = None


# =============================================================================
# Area data
# =============================================================================


@dataclass(frozen=True)
class ProvinceData:
    """
    Attributes of one territory for one year.

    The API sends these as `[rulerId, cultureId, religionId, capitalId|null,
    population]`; from_wire/to_wire are the only places that know the order.
    """

    ruler: str
    culture: str
    religion: str
    capital: str | None = None
    population: float = 0

    @classmethod
    def from_wire(cls, raw: Sequence[Any]) -> "ProvinceData":
        def _id(index: int) -> str:
            value = raw[index] if len(raw) > index else None
            return "" if value is None else str(value)

        capital = raw[3] if len(raw) > 3 else None
        population = raw[4] if len(raw) > 4 else 0
        if not is_finite_number(population):
            population = 0

        return cls(
            ruler=_id(0),
            culture=_id(1),
            religion=_id(2),
            capital=None if capital is None else str(capital),
            population=population,
        )

    def to_wire(self) -> list[Any]:
        return [self.ruler, self.culture, self.religion, self.capital, self.population]

    def value_at(self, dimension: Dimension) -> str | float:
        """Attribute read through the fixed dimension index mapping."""
        return self.to_wire()[DIMENSION_INDEX[dimension]]


def is_valid_province_data(raw: Any) -> bool:
    """Check that a wire value looks like a province tuple."""
    if not isinstance(raw, (list, tuple)) or len(raw) < 3:
        return False
    return all(value is None or isinstance(value, str) for value in raw[:3])


# Year snapshot: territory id -> attributes, read-only once built
AreaSnapshot = Mapping[str, ProvinceData]


def parse_area_snapshot(payload: Mapping[str, Any]) -> AreaSnapshot:
    """Convert an `/areas/{year}` payload into a read-only snapshot.

    Already-parsed ProvinceData values are kept as they are; malformed wire
    entries are skipped.
    """
    snapshot: dict[str, ProvinceData] = {}
    skipped = 0

    for province_id, raw in payload.items():
        if isinstance(raw, ProvinceData):
            snapshot[str(province_id)] = raw
        elif is_valid_province_data(raw):
            snapshot[str(province_id)] = ProvinceData.from_wire(raw)
        else:
            skipped += 1

    if skipped:
        logger.debug(f"Skipped {skipped} malformed province entries")

    return MappingProxyType(snapshot)


# =============================================================================
# Territory geometry
# =============================================================================


@dataclass(eq=False)
class TerritoryRecord:
    """
    Polygon geometry of one territory.

    The geometry never changes. `properties` holds the most recently applied
    attribute values and is replaced wholesale, never edited in place.
    """

    id: str
    geometry: Polygon | MultiPolygon
    properties: Mapping[str, Any] = field(default_factory=dict)

    @cached_property
    def centroid(self) -> tuple[float, float]:
        return geometry.centroid(self.geometry)

    @cached_property
    def area_m2(self) -> float:
        return geometry.geodesic_area(self.geometry)

    def to_feature(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "id": self.id,
            "properties": {"id": self.id, **self.properties},
            "geometry": geometry.to_geojson(self.geometry),
        }


class TerritoryCollection:
    """Ordered territory records with an id index."""

    def __init__(self, records: Iterable[TerritoryRecord] = ()):
        self._records: list[TerritoryRecord] = list(records)
        self._by_id: dict[str, TerritoryRecord] = {r.id: r for r in self._records}

    @classmethod
    def from_geojson(cls, collection: Mapping[str, Any]) -> "TerritoryCollection":
        """Build from a GeoJSON FeatureCollection.

        The territory id is `properties.id`, falling back to the feature id.
        Features lacking an id or a buildable polygon geometry are skipped.
        """
        records = []
        skipped = 0

        for feature in collection.get("features") or []:
            if not isinstance(feature, Mapping):
                skipped += 1
                continue
            properties = feature.get("properties") or {}
            territory_id = properties.get("id", feature.get("id"))
            try:
                geom = geometry.to_shape(feature.get("geometry"))
            except (ShapelyError, ValueError, TypeError) as e:
                logger.debug(f"Bad geometry for province {territory_id}: {e}")
                geom = None
            if territory_id is None or geom is None:
                skipped += 1
                continue
            records.append(TerritoryRecord(id=str(territory_id), geometry=geom))

        if skipped:
            logger.debug(f"Skipped {skipped} province features without id or usable polygon geometry")

        return cls(records)

    def __iter__(self):
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, territory_id: str) -> bool:
        return territory_id in self._by_id

    def get(self, territory_id: str) -> TerritoryRecord | None:
        return self._by_id.get(territory_id)

    def to_feature_collection(self) -> dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": [record.to_feature() for record in self._records],
        }


# =============================================================================
# Metadata
# =============================================================================


@dataclass(frozen=True)
class MetadataEntry:
    """Display metadata for one entity id within one dimension."""

    name: str
    color: str
    wiki: str | None = None
    parent: str | None = None  # religion entries only: religionGeneral id

    @classmethod
    def from_wire(cls, raw: Any, with_parent: bool = False) -> "MetadataEntry | None":
        """Normalize `[name, color, wiki?, _, parent?]` (or a dict) into an entry."""
        if isinstance(raw, Mapping):
            name, color = raw.get("name"), raw.get("color")
            wiki, parent = raw.get("wiki"), raw.get("parent")
        elif isinstance(raw, (list, tuple)) and len(raw) >= 2:
            name, color = raw[0], raw[1]
            wiki = raw[2] if len(raw) > 2 else None
            parent = raw[4] if len(raw) > 4 else None
        else:
            return None

        if name is None or color is None:
            return None

        return cls(
            name=str(name),
            color=str(color),
            wiki=str(wiki) if wiki else None,
            parent=str(parent) if with_parent and parent else None,
        )


@dataclass
class EntityMetadata:
    """Metadata tables for the four metadata dimensions."""

    ruler: dict[str, MetadataEntry] = field(default_factory=dict)
    culture: dict[str, MetadataEntry] = field(default_factory=dict)
    religion: dict[str, MetadataEntry] = field(default_factory=dict)
    religionGeneral: dict[str, MetadataEntry] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "EntityMetadata":
        tables = {}
        for dimension in METADATA_DIMENSIONS:
            raw_table = payload.get(dimension.value) or {}
            table = {}
            if isinstance(raw_table, Mapping):
                for entity_id, raw in raw_table.items():
                    entry = MetadataEntry.from_wire(
                        raw, with_parent=dimension is Dimension.RELIGION
                    )
                    if entry is not None:
                        table[str(entity_id)] = entry
            tables[dimension.value] = table
        return cls(**tables)

    def table(self, dimension: Dimension) -> dict[str, MetadataEntry] | None:
        if dimension not in METADATA_DIMENSIONS:
            return None
        return getattr(self, dimension.value)


# =============================================================================
# Outputs
# =============================================================================


@dataclass(frozen=True)
class EntityOutline:
    """Merged boundary of all territories sharing one attribute value."""

    geometry: Polygon | MultiPolygon
    color: str
    value: str
    dimension: Dimension

    def to_feature(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "properties": {
                "color": self.color,
                "value": self.value,
                "dimension": self.dimension.value,
            },
            "geometry": geometry.to_geojson(self.geometry),
        }


@dataclass(frozen=True)
class LabelFeature:
    """One text label per attribute-value group."""

    position: tuple[float, float]  # (lng, lat)
    display_name: str
    font_size: float
    entity_id: str
    dimension: Dimension
    area_m2: float = 0.0

    def to_feature(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "properties": {
                "name": self.display_name,
                "fontSize": self.font_size,
                "entityId": self.entity_id,
                "dimension": self.dimension.value,
            },
            "geometry": {"type": "Point", "coordinates": list(self.position)},
        }


# =============================================================================
# Markers
# =============================================================================

DEFAULT_MARKER_FILTERS: dict[str, bool] = {
    "battle": True,
    "city": True,
    "capital": True,
    "person": True,
    "event": True,
    "other": True,
}

# API short codes grouped into the legacy filter categories.
# Codes missing here fall into "other".
MARKER_TYPE_CATEGORIES: dict[str, str] = {
    "p": "person",
    "s": "person",  # scholar
    "r": "person",  # religious figure
    "h": "person",  # historical figure
    "person": "person",
    "b": "battle",
    "m": "battle",  # military
    "battle": "battle",
    "c": "city",
    "city": "city",
    "ca": "capital",
    "capital": "capital",
    "e": "event",
    "event": "event",
}


def marker_category(marker_type: str) -> str:
    return MARKER_TYPE_CATEGORIES.get(marker_type, "other")


def _coordinates(raw: Any) -> tuple[float, float] | None:
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        return None
    lng, lat = raw[0], raw[1]
    if not (is_finite_number(lng) and is_finite_number(lat)):
        return None
    return float(lng), float(lat)


@dataclass(frozen=True)
class Marker:
    """A point feature (person, battle, city...) attached to a year."""

    id: str
    name: str
    type: str
    year: int | None
    coordinates: tuple[float, float]  # (lng, lat)
    secondary_coordinates: tuple[float, float] | None = None
    end_year: int | None = None
    wiki: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def category(self) -> str:
        return marker_category(self.type)

    @classmethod
    def from_wire(cls, raw: Any) -> "Marker | None":
        """Build from an API record (`_id, name, type, year, coo, coo2?, end?, wiki?, data?`)."""
        if not isinstance(raw, Mapping):
            return None
        coordinates = _coordinates(raw.get("coo"))
        if coordinates is None:
            return None

        year = raw.get("year")
        end = raw.get("end")
        return cls(
            id=str(raw.get("_id") or raw.get("id") or ""),
            name=str(raw.get("name") or ""),
            type=str(raw.get("type") or "other"),
            year=int(year) if is_finite_number(year) else None,
            coordinates=coordinates,
            secondary_coordinates=_coordinates(raw.get("coo2")),
            end_year=int(end) if is_finite_number(end) else None,
            wiki=raw.get("wiki") or None,
            data=raw.get("data") if isinstance(raw.get("data"), Mapping) else {},
        )
