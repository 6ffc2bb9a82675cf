"""
Map session.

One MapSession per interactive session owns the API client, the shared error
field and every state component, and wires the cross-component rules:
active color vs. label dimension, selection vs. entity outline, and the
year-change sequence (area data -> province properties -> labels, with
markers loaded alongside).

Consumers receive the session explicitly; there is no module-level instance.
"""

import asyncio
from typing import Any

from loguru import logger

from chronomap.areas import AreaDataCache
from chronomap.errors import ErrorState
from chronomap.labels import LabelPlacementEngine
from chronomap.markers import MarkerCache
from chronomap.metadata import MetadataStore
from chronomap.outline import EntityOutlineEngine
from chronomap.transport import ApiClient
from chronomap.types import AreaSnapshot, Dimension, EntityMetadata, ProvinceData, parse_dimension
from chronomap.viewport import ViewportController

DEFAULT_ACTIVE_COLOR = Dimension.RULER


class MapSession:
    """Service object holding all map state for one session."""

    def __init__(
        self,
        client: ApiClient | None = None,
        base_url: str | None = None,
        active_color: Dimension = DEFAULT_ACTIVE_COLOR,
        marker_limit: int | None = None,
    ):
        """
        Initialize the session.

        Args:
            client: API client to share between loaders (created if omitted,
                and closed with the session only then)
            base_url: API base URL for a created client (defaults to settings)
            active_color: Initial choropleth dimension
            marker_limit: Initial marker fetch limit (defaults to settings)
        """
        self._owns_client = client is None
        self.client = client if client is not None else ApiClient(base_url=base_url)
        self.errors = ErrorState()

        self.viewport = ViewportController()
        self.metadata = MetadataStore(self.client, self.errors)
        self.areas = AreaDataCache(self.client, self.metadata, self.errors)
        self.markers = MarkerCache(self.client, self.errors, limit=marker_limit)
        self.outline = EntityOutlineEngine(self.areas, self.metadata, self.viewport)
        self.labels = LabelPlacementEngine(self.areas, self.metadata)

        active_color = parse_dimension(active_color) or DEFAULT_ACTIVE_COLOR
        self.active_color: Dimension = active_color
        self.previous_active_color: Dimension | None = None
        self._layer_visibility = {d: d is active_color for d in Dimension}
        self._active_label: Dimension = active_color
        self._color_label_locked = True

        self.selected_province: str | None = None
        self.selected_province_data: ProvinceData | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        self.areas.cancel_request()
        self.markers.cancel_request()
        if self._owns_client:
            await self.client.aclose()

    # =========================================================================
    # Errors
    # =========================================================================

    @property
    def error(self) -> Exception | None:
        return self.errors.error

    def set_error(self, error: Exception | None) -> None:
        self.errors.set(error)

    # =========================================================================
    # Active color / labels
    # =========================================================================

    def set_active_color(self, dimension: Dimension | str) -> bool:
        """
        Switch the choropleth dimension.

        Exactly one layer is visible afterwards. Returns False when the
        dimension is invalid or already active.
        """
        dim = parse_dimension(dimension)
        if dim is None:
            logger.warning(f'set_active_color: Invalid dimension "{dimension}"')
            return False
        if dim is self.active_color:
            return False

        self.previous_active_color = self.active_color
        self.active_color = dim
        self._layer_visibility = {d: d is dim for d in Dimension}

        if dim is Dimension.POPULATION:
            self.outline.clear_entity_outline()

        if self._color_label_locked and self._active_label is not dim:
            self._active_label = dim
            self.refresh_labels()

        return True

    def get_layer_visibility(self) -> dict[Dimension, bool]:
        return dict(self._layer_visibility)

    @property
    def active_label(self) -> Dimension:
        return self._active_label

    def set_active_label(self, dimension: Dimension | str) -> bool:
        dim = parse_dimension(dimension)
        if dim is None:
            logger.warning(f'set_active_label: Invalid dimension "{dimension}"')
            return False
        self._active_label = dim
        self.refresh_labels()
        return True

    @property
    def color_label_locked(self) -> bool:
        return self._color_label_locked

    def set_color_label_locked(self, locked: bool) -> None:
        """Lock or unlock the label dimension to the active color."""
        self._color_label_locked = bool(locked)
        if self._color_label_locked and self._active_label is not self.active_color:
            self._active_label = self.active_color
            self.refresh_labels()

    def refresh_labels(self):
        return self.labels.calculate_labels(self._active_label)

    # =========================================================================
    # Selection
    # =========================================================================

    def select_province(self, province_id: str) -> bool:
        """
        Select a province and outline the entity it belongs to on the active color.

        Returns False (selection unchanged) for an empty id.
        """
        province_id = province_id.strip() if isinstance(province_id, str) else ""
        if not province_id:
            logger.warning("select_province: Invalid province id")
            return False

        snapshot = self.areas.current
        data = snapshot.get(province_id) if snapshot is not None else None

        self.selected_province = province_id
        self.selected_province_data = data

        if data is None or self.active_color is Dimension.POPULATION:
            self.outline.clear_entity_outline()
            return True

        # religionGeneral reads the religion column like the outline match does
        value = data.value_at(self.active_color)
        if value:
            self.outline.calculate_entity_outline(value, self.active_color)
        else:
            self.outline.clear_entity_outline()
        return True

    def clear_selection(self) -> None:
        self.selected_province = None
        self.selected_province_data = None
        self.outline.clear_entity_outline()

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_metadata(self) -> EntityMetadata | None:
        """Load metadata and geometry, re-annotating the current year if one is loaded."""
        metadata = await self.metadata.load_metadata()
        if metadata is not None and self.areas.current is not None:
            self.areas.update_province_properties()
            self.refresh_labels()
        return metadata

    async def _load_year_areas(self, year: int | float) -> AreaSnapshot | None:
        snapshot = await self.areas.load_area_data(year)
        if snapshot is None:
            return None
        self.areas.update_province_properties(snapshot)
        self.refresh_labels()
        return snapshot

    async def change_year(self, year: int | float) -> AreaSnapshot | None:
        """
        Move the session to another year.

        Area data (then province properties and labels) and markers load
        concurrently. Returns the new snapshot, or None if the area load
        failed or was superseded.
        """
        snapshot, _ = await asyncio.gather(
            self._load_year_areas(year),
            self.markers.load_markers(year),
        )
        return snapshot

    def to_dict(self) -> dict[str, Any]:
        """Summary of the session state for display."""
        return {
            "year": self.areas.current_year,
            "active_color": self.active_color.value,
            "active_label": self._active_label.value,
            "selected_province": self.selected_province,
            "markers": len(self.markers.markers),
            "labels": len(self.labels.labels),
            "error": str(self.error) if self.error else None,
        }
