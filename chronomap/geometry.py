"""
Geometry composition helpers.

Thin wrappers around shapely and pyproj. The outline and label engines call
these instead of the libraries directly so the failure policy around each
primitive lives in one place (and can be patched in tests).
"""

from functools import lru_cache

import shapely
from pyproj import Geod
from shapely.geometry import MultiPolygon, Polygon, mapping, shape
from shapely.geometry.base import BaseGeometry

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")


@lru_cache()
def _geod() -> Geod:
    return Geod(ellps="WGS84")


def to_shape(geometry: dict) -> Polygon | MultiPolygon | None:
    """Build a shapely geometry from a GeoJSON geometry dict.

    Returns None for anything that is not a polygon or multipolygon.
    """
    if not isinstance(geometry, dict) or geometry.get("type") not in POLYGONAL_TYPES:
        return None
    return shape(geometry)


def to_geojson(geom: BaseGeometry) -> dict:
    """GeoJSON geometry dict for a shapely geometry."""
    return mapping(geom)


def union_pair(a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
    """Union of two polygonal geometries."""
    return a.union(b)


def merge_geometries(geometries: list[BaseGeometry]) -> BaseGeometry | None:
    """Merge geometries by iterative pairwise union.

    The first geometry seeds the accumulator; every following one is unioned
    into it. Exceptions from the union propagate to the caller.
    """
    merged = None
    for geom in geometries:
        merged = geom if merged is None else union_pair(merged, geom)
    return merged


def polygon_parts(geom: BaseGeometry) -> list[Polygon]:
    """Flatten any geometry into its polygon parts, dropping lines and points."""
    if isinstance(geom, Polygon):
        return [] if geom.is_empty else [geom]
    if hasattr(geom, "geoms"):
        parts = []
        for sub in geom.geoms:
            parts.extend(polygon_parts(sub))
        return parts
    return []


def repair_self_intersections(geom: BaseGeometry) -> list[Polygon]:
    """Decompose a possibly self-intersecting geometry into simple polygons."""
    return polygon_parts(shapely.make_valid(geom))


def bounding_box(geom: BaseGeometry) -> tuple[float, float, float, float]:
    """(min_lng, min_lat, max_lng, max_lat) of a geometry."""
    return geom.bounds


def centroid(geom: BaseGeometry) -> tuple[float, float]:
    """Planar centroid in (lng, lat)."""
    point = geom.centroid
    return point.x, point.y


def geodesic_area(geom: BaseGeometry) -> float:
    """Area on the WGS84 ellipsoid in square meters."""
    area, _ = _geod().geometry_area_perimeter(geom)
    return abs(area)
