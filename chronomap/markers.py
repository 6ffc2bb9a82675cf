"""
Marker cache and type filter.

Only the markers of the most recently loaded year are kept. Visibility is a
per-type boolean map; types without an explicit entry fall back to their
legacy category toggle (battle, city, capital, person, event, other).
"""

from typing import Any

from loguru import logger

from chronomap.config import settings
from chronomap.endpoints import MARKERS
from chronomap.errors import ErrorState, RequestCancelled, TransportError
from chronomap.inflight import RequestSlot
from chronomap.transport import ApiClient
from chronomap.types import DEFAULT_MARKER_FILTERS, Marker, is_finite_number, marker_category


class MarkerCache:
    """Current-year markers with a bounded fetch size and type filtering."""

    def __init__(
        self,
        client: ApiClient,
        errors: ErrorState | None = None,
        limit: int | None = None,
    ):
        self._client = client
        self._errors = errors if errors is not None else ErrorState()
        self._requests = RequestSlot("markers")

        self.markers: list[Marker] = []
        self.year: int | float | None = None
        self.is_loading = False
        self.marker_limit = settings.map.default_marker_limit if limit is None else limit
        self.filters: dict[str, bool] = dict(DEFAULT_MARKER_FILTERS)
        self.cluster_markers = False

    async def _fetch(self, year: int | float, limit: int) -> Any:
        path, params = MARKERS.by_year(year, limit)
        return await self._client.get(path, params)

    async def load_markers(self, year: int | float) -> list[Marker]:
        """
        Load markers for a year, replacing the current set.

        A limit of 0 means markers are switched off: nothing is requested and
        the current set is emptied.
        """
        if not is_finite_number(year):
            logger.warning(f'load_markers: Invalid year "{year}"')
            return []

        if self.marker_limit == 0:
            self.cancel_request()
            self.markers = []
            self.year = year
            return []

        self.is_loading = True
        handle = self._requests.start(self._fetch(year, self.marker_limit))
        try:
            payload = await handle.wait()
        except RequestCancelled:
            logger.debug(f"Marker request for {year} superseded")
            return []
        except TransportError as e:
            logger.error(f"Failed to load markers for year {year}: {e}")
            self._errors.set(e)
            self.is_loading = False
            return []

        if not isinstance(payload, list):
            logger.warning(f"load_markers: Invalid response format for year {year}")
            self.is_loading = False
            return []

        markers = [m for m in (Marker.from_wire(raw) for raw in payload) if m is not None]
        if len(markers) < len(payload):
            logger.debug(f"Skipped {len(payload) - len(markers)} markers without coordinates")

        self.markers = markers
        self.year = year
        self.is_loading = False
        logger.debug(f"Loaded {len(markers)} markers for {year}")
        return markers

    def cancel_request(self) -> bool:
        """Cancel the in-flight marker request, if any."""
        cancelled = self._requests.cancel()
        if cancelled:
            self.is_loading = False
        return cancelled

    def set_marker_limit(self, limit: int) -> None:
        """Set how many markers a load may return (0 disables marker loading)."""
        if not is_finite_number(limit) or limit < 0:
            logger.warning(f'set_marker_limit: Invalid limit "{limit}"')
            return
        self.marker_limit = min(int(limit), settings.map.max_marker_limit)

    def set_marker_filter(self, marker_type: str, enabled: bool) -> None:
        self.filters = {**self.filters, marker_type: bool(enabled)}

    def set_all_filters(self, enabled: bool) -> None:
        """Check or uncheck every legacy category at once."""
        self.filters = {category: bool(enabled) for category in DEFAULT_MARKER_FILTERS}

    def set_cluster_markers(self, enabled: bool) -> None:
        self.cluster_markers = bool(enabled)

    def is_marker_visible(self, marker: Marker) -> bool:
        enabled = self.filters.get(marker.type)
        if enabled is None:
            enabled = self.filters.get(marker_category(marker.type), True)
        return enabled

    def get_filtered_markers(self) -> list[Marker]:
        return [m for m in self.markers if self.is_marker_visible(m)]
