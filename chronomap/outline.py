"""
Entity outline engine.

Computes one outline for every territory sharing an attribute value (all
provinces of a ruler, a culture, a religion) and fits the viewport to it.
Geometry failures never escape: the outline is cleared, or for a failed
self-intersection repair the unrepaired merge is kept.
"""

import math

from loguru import logger
from shapely.errors import ShapelyError

from chronomap import geometry
from chronomap.areas import AreaDataCache
from chronomap.metadata import MetadataStore
from chronomap.types import DIMENSION_INDEX, Dimension, EntityOutline, FlyToOptions, parse_dimension
from chronomap.viewport import ViewportController

# Lowest zoom the viewport is fitted to for an entity
MIN_ENTITY_ZOOM = 4.5
FIT_DURATION = 1500.0  # milliseconds
DEFAULT_FIT_PADDING = 50


class EntityOutlineEngine:
    """Merged outline of one entity plus viewport fitting."""

    def __init__(
        self,
        areas: AreaDataCache,
        metadata: MetadataStore,
        viewport: ViewportController,
    ):
        self._areas = areas
        self._metadata = metadata
        self._viewport = viewport
        self.outline: EntityOutline | None = None

    @property
    def color(self) -> str | None:
        return self.outline.color if self.outline else None

    def clear_entity_outline(self) -> None:
        self.outline = None

    def _repair(self, merged):
        try:
            parts = geometry.repair_self_intersections(merged)
        except (ShapelyError, ValueError) as e:
            logger.warning(f"calculate_entity_outline: self-intersection repair failed, using merged polygon: {e}")
            return merged

        if not parts:
            return merged
        if len(parts) == 1:
            return parts[0]
        return geometry.merge_geometries(parts)

    def calculate_entity_outline(self, value: str, dimension: Dimension | str) -> EntityOutline | None:
        """
        Merge every territory whose attribute on `dimension` equals `value`.

        Returns the stored outline, or None (outline cleared) when the input is
        invalid, data is missing, nothing matches, or the merge fails.
        """
        if not value or not isinstance(value, str):
            logger.warning("calculate_entity_outline: Invalid value provided")
            self.outline = None
            return None

        dim = parse_dimension(dimension)
        if dim is None or dim is Dimension.POPULATION:
            logger.warning(f'calculate_entity_outline: Invalid dimension "{dimension}" for entity outline')
            self.outline = None
            return None

        territories = self._metadata.territories
        snapshot = self._areas.current
        if territories is None or snapshot is None:
            logger.warning("calculate_entity_outline: Missing provinces geometry or area data")
            self.outline = None
            return None

        index = DIMENSION_INDEX[dim]
        matching = []
        for record in territories:
            data = snapshot.get(record.id)
            if data is not None and data.to_wire()[index] == value:
                matching.append(record.geometry)

        if not matching:
            logger.warning(f"calculate_entity_outline: No provinces found with {dim.value}={value}")
            self.outline = None
            return None

        try:
            merged = geometry.merge_geometries(matching)
            merged = self._repair(merged)
        except (ShapelyError, ValueError, TypeError) as e:
            logger.error(f"calculate_entity_outline: Error merging polygons: {e}")
            self.outline = None
            return None

        if merged is None or merged.is_empty:
            logger.warning(f"calculate_entity_outline: Empty outline for {dim.value}={value}")
            self.outline = None
            return None

        self.outline = EntityOutline(
            geometry=merged,
            color=self._metadata.get_entity_color(value, dim),
            value=value,
            dimension=dim,
        )
        logger.debug(f"Entity outline for {dim.value}={value}: {len(matching)} provinces merged")
        return self.outline

    def fit_to_entity_outline(self, padding: float = DEFAULT_FIT_PADDING) -> FlyToOptions | None:
        """
        Fly the viewport to the outline's bounding box.

        The target zoom always lies in [4.5, max(4.5, current zoom - 1)], so
        fitting never zooms in past one level above the current view.
        """
        if self.outline is None:
            logger.warning("fit_to_entity_outline: No entity outline to fit")
            return None

        if not isinstance(padding, (int, float)) or not math.isfinite(padding):
            padding = DEFAULT_FIT_PADDING

        min_lng, min_lat, max_lng, max_lat = geometry.bounding_box(self.outline.geometry)
        center_lng = (min_lng + max_lng) / 2
        center_lat = (min_lat + max_lat) / 2

        current_zoom = self._viewport.viewport.zoom
        upper = max(MIN_ENTITY_ZOOM, current_zoom - 1)

        span = max(max_lng - min_lng, max_lat - min_lat)
        if span > 0:
            # At zoom 0 the world is ~360 degrees wide; each level halves that
            calculated = (math.log2(360 / span) - 1) * (1 - padding / 500)
        else:
            calculated = upper

        zoom = max(MIN_ENTITY_ZOOM, min(upper, calculated))

        return self._viewport.fly_to(
            FlyToOptions(
                latitude=center_lat,
                longitude=center_lng,
                zoom=zoom,
                duration=FIT_DURATION,
            )
        )
