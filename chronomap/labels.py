"""
Label placement engine.

One label per attribute-value group. The label sits at the area-weighted
mean of the member territories' centroids, which approximates the centroid
of the merged group polygon without unioning every group on each dimension
switch. Labels can land outside concave or disjoint groups; that is the
accepted cost.
"""

import math
from typing import Any

from loguru import logger
from shapely.errors import ShapelyError

from chronomap.areas import AreaDataCache
from chronomap.metadata import MetadataStore
from chronomap.types import Dimension, LabelFeature, parse_dimension

MIN_LABEL_AREA = 1e9  # m²
MAX_LABEL_AREA = 1e12  # m²
MIN_FONT_SIZE = 10.0
MAX_FONT_SIZE = 28.0


def font_size_for_area(area_m2: float) -> float:
    """Map log10 of the clamped area linearly onto [MIN_FONT_SIZE, MAX_FONT_SIZE]."""
    clamped = max(MIN_LABEL_AREA, min(MAX_LABEL_AREA, area_m2))
    low, high = math.log10(MIN_LABEL_AREA), math.log10(MAX_LABEL_AREA)
    t = (math.log10(clamped) - low) / (high - low)
    return MIN_FONT_SIZE + t * (MAX_FONT_SIZE - MIN_FONT_SIZE)


class _Group:
    __slots__ = ("weighted_x", "weighted_y", "area")

    def __init__(self):
        self.weighted_x = 0.0
        self.weighted_y = 0.0
        self.area = 0.0

    def add(self, centroid: tuple[float, float], area: float) -> None:
        self.weighted_x += centroid[0] * area
        self.weighted_y += centroid[1] * area
        self.area += area


class LabelPlacementEngine:
    def __init__(self, areas: AreaDataCache, metadata: MetadataStore):
        self._areas = areas
        self._metadata = metadata
        self.labels: list[LabelFeature] = []
        self.dimension: Dimension | None = None

    def clear_labels(self) -> None:
        self.labels = []
        self.dimension = None

    def _resolve(self, data, dimension: Dimension) -> str:
        if dimension is Dimension.RELIGION_GENERAL:
            return self._metadata.get_religion_general(data.religion)
        return data.value_at(dimension)

    def calculate_labels(self, dimension: Dimension | str) -> list[LabelFeature]:
        """
        Compute label placements for every group of territories on `dimension`.

        Replaces the current label set. Population, an unknown dimension, or
        missing geometry/area data/metadata leaves no labels. Labels are
        ordered by descending group area.
        """
        dim = parse_dimension(dimension)
        if dim is None or dim is Dimension.POPULATION:
            if dim is None:
                logger.warning(f'calculate_labels: Invalid dimension "{dimension}"')
            self.clear_labels()
            return []

        territories = self._metadata.territories
        snapshot = self._areas.current
        if territories is None or snapshot is None or self._metadata.metadata is None:
            logger.debug("calculate_labels: provinces, area data or metadata not loaded yet")
            self.clear_labels()
            return []

        groups: dict[str, _Group] = {}
        for record in territories:
            data = snapshot.get(record.id)
            if data is None:
                continue
            value = self._resolve(data, dim)
            if not value:
                continue

            try:
                centroid = record.centroid
                area = record.area_m2
            except (ShapelyError, ValueError) as e:
                logger.debug(f"Skipping province {record.id} in labels: {e}")
                continue

            if not (math.isfinite(area) and all(map(math.isfinite, centroid))):
                continue

            groups.setdefault(value, _Group()).add(centroid, area)

        labels = []
        for entity_id, group in groups.items():
            if group.area <= 0:
                continue
            labels.append(
                LabelFeature(
                    position=(group.weighted_x / group.area, group.weighted_y / group.area),
                    display_name=self._metadata.get_entity_name(entity_id, dim) or entity_id,
                    font_size=font_size_for_area(group.area),
                    entity_id=entity_id,
                    dimension=dim,
                    area_m2=group.area,
                )
            )

        labels.sort(key=lambda label: label.area_m2, reverse=True)
        self.labels = labels
        self.dimension = dim
        logger.debug(f"Calculated {len(labels)} {dim.value} labels")
        return labels

    def to_feature_collection(self) -> dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": [label.to_feature() for label in self.labels],
        }
