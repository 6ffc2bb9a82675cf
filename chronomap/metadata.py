"""
Metadata store.

Loads the combined metadata payload once per session: display name, color
and optional wiki title for every ruler, culture, religion and
religionGeneral id, plus the province geometry collection bundled with it.
"""

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from loguru import logger

from chronomap.endpoints import METADATA
from chronomap.errors import ChronomapError, ErrorState, TransportError
from chronomap.transport import ApiClient
from chronomap.types import (
    FALLBACK_COLOR,
    Dimension,
    EntityMetadata,
    MetadataEntry,
    TerritoryCollection,
    parse_dimension,
)

WIKIPEDIA_BASE_URL = "https://en.wikipedia.org/wiki/"


class MetadataStore:
    """Entity display metadata and territory geometry for one session."""

    def __init__(self, client: ApiClient, errors: ErrorState | None = None):
        self._client = client
        self._errors = errors if errors is not None else ErrorState()
        self.metadata: EntityMetadata | None = None
        self.territories: TerritoryCollection | None = None
        self.is_loading = False

    async def load_metadata(self) -> EntityMetadata | None:
        """
        Fetch and normalize the combined metadata payload.

        Returns the normalized metadata, or None on failure (the error is
        recorded in the shared error state).
        """
        path, params = METADATA.init()
        self.is_loading = True

        try:
            payload = await self._client.get(path, params)
        except TransportError as e:
            logger.error(f"Failed to load metadata: {e}")
            self._errors.set(e)
            self.is_loading = False
            return None

        if not isinstance(payload, Mapping):
            logger.warning(f"load_metadata: Invalid response format ({type(payload).__name__})")
            self.is_loading = False
            return None

        try:
            metadata = EntityMetadata.from_wire(payload)
            provinces = payload.get("provinces")
            territories = TerritoryCollection.from_geojson(provinces) if isinstance(provinces, Mapping) else None
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to parse metadata payload: {e}")
            self._errors.set(ChronomapError(f"Invalid metadata payload: {e}"))
            return None
        finally:
            self.is_loading = False

        self.metadata = metadata
        if territories is not None:
            self.set_provinces(territories)

        logger.info(
            "Loaded metadata: "
            + ", ".join(f"{d.value}={len(metadata.table(d))}" for d in (
                Dimension.RULER, Dimension.CULTURE, Dimension.RELIGION, Dimension.RELIGION_GENERAL
            ))
        )
        return metadata

    def set_metadata(self, metadata: EntityMetadata | Mapping[str, Any]) -> None:
        """Replace the metadata, accepting either normalized tables or a wire payload."""
        if not isinstance(metadata, EntityMetadata):
            metadata = EntityMetadata.from_wire(metadata)
        self.metadata = metadata

    def set_provinces(self, geojson: Mapping[str, Any] | TerritoryCollection) -> None:
        if not isinstance(geojson, TerritoryCollection):
            geojson = TerritoryCollection.from_geojson(geojson)
        self.territories = geojson
        logger.debug(f"Province geometry set: {len(geojson)} territories")

    def _entry(self, value: str, dimension: Dimension | str) -> MetadataEntry | None:
        if self.metadata is None or not value:
            return None
        dimension = parse_dimension(dimension)
        table = self.metadata.table(dimension) if dimension else None
        if table is None:
            return None
        return table.get(value)

    def get_entity_color(self, value: str, dimension: Dimension | str) -> str:
        """Color for an entity, or FALLBACK_COLOR when it cannot be resolved."""
        entry = self._entry(value, dimension)
        return entry.color if entry else FALLBACK_COLOR

    def get_entity_name(self, value: str, dimension: Dimension | str) -> str | None:
        entry = self._entry(value, dimension)
        return entry.name if entry else None

    def get_entity_wiki(self, value: str, dimension: Dimension | str) -> str | None:
        """
        Wiki title for an entity.

        For religionGeneral, `value` is a religion id: its parent is resolved
        first and the wiki comes from the religionGeneral table. Color lookups
        for religionGeneral are keyed directly by the passed id instead.
        """
        if parse_dimension(dimension) is Dimension.RELIGION_GENERAL:
            religion = self._entry(value, Dimension.RELIGION)
            if religion is None or not religion.parent:
                return None
            parent = self._entry(religion.parent, Dimension.RELIGION_GENERAL)
            return parent.wiki if parent else None

        entry = self._entry(value, dimension)
        return entry.wiki if entry else None

    def get_religion_general(self, religion_id: str) -> str:
        """
        General religion for a religion id.

        Parent if the religion has one; the id itself otherwise (whether or
        not it is a religionGeneral id). Never fails.
        """
        religion = self._entry(religion_id, Dimension.RELIGION)
        if religion is not None and religion.parent:
            return religion.parent
        return religion_id

    def wiki_url(self, value: str, dimension: Dimension | str, fallback: str | None = None) -> str | None:
        """Wikipedia URL for an entity, built from its wiki title or `fallback`."""
        title = self.get_entity_wiki(value, dimension) or fallback
        if not title:
            return None
        return WIKIPEDIA_BASE_URL + quote(title.replace(" ", "_"))
