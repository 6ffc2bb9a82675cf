"""
Area data cache.

Year-keyed store of per-territory attribute snapshots. Each year is fetched
at most once; a cache hit is a dictionary lookup, so interactive year
scrubbing over already-visited years never waits on the network.

The cache container is never mutated in place: every write builds a new
dict, so readers always see either the old or the new cache.
"""

from collections.abc import Mapping
from typing import Any

from loguru import logger

from chronomap.endpoints import AREAS
from chronomap.errors import ErrorState, RequestCancelled, TransportError
from chronomap.inflight import RequestSlot
from chronomap.metadata import MetadataStore
from chronomap.transport import ApiClient
from chronomap.types import AreaSnapshot, is_finite_number, parse_area_snapshot


class AreaDataCache:
    """Per-year territory attributes with single-flight loading."""

    def __init__(
        self,
        client: ApiClient,
        metadata: MetadataStore,
        errors: ErrorState | None = None,
    ):
        self._client = client
        self._metadata = metadata
        self._errors = errors if errors is not None else ErrorState()
        self._requests = RequestSlot("area data")

        self._cache: dict[int | float, AreaSnapshot] = {}
        self.current: AreaSnapshot | None = None
        self.current_year: int | float | None = None
        self.is_loading = False

    @property
    def cached_years(self) -> list[int | float]:
        return sorted(self._cache)

    def get_cached(self, year: int | float) -> AreaSnapshot | None:
        return self._cache.get(year)

    def _store(self, year: int | float, snapshot: AreaSnapshot) -> None:
        self._cache = {**self._cache, year: snapshot}
        self.current = snapshot
        self.current_year = year
        self.is_loading = False

    async def _fetch(self, year: int | float) -> Any:
        return await self._client.get(AREAS.by_year(year))

    async def load_area_data(self, year: int | float) -> AreaSnapshot | None:
        """
        Load the snapshot for a year, from cache or from the API.

        Any earlier in-flight area request is cancelled first. Returns None
        for an invalid year, a failed request, or a request that was itself
        superseded before it completed.
        """
        if not is_finite_number(year):
            logger.warning(f'load_area_data: Invalid year "{year}"')
            return None

        self._requests.cancel()

        cached = self._cache.get(year)
        if cached is not None:
            logger.debug(f"Area data cache hit: {year}")
            self.current = cached
            self.current_year = year
            self.is_loading = False
            return cached

        self.is_loading = True
        self._errors.clear()

        handle = self._requests.start(self._fetch(year))
        try:
            payload = await handle.wait()
        except RequestCancelled:
            logger.debug(f"Area data request for {year} superseded")
            return None
        except TransportError as e:
            logger.error(f"Failed to load area data for year {year}: {e}")
            self._errors.set(e)
            self.is_loading = False
            return None

        if not isinstance(payload, Mapping):
            logger.warning(f"load_area_data: Invalid response format for year {year}")
            self.is_loading = False
            return None

        snapshot = parse_area_snapshot(payload)
        self._store(year, snapshot)
        logger.debug(f"Loaded area data for {year}: {len(snapshot)} provinces")
        return snapshot

    def cancel_request(self) -> bool:
        """Cancel the in-flight area request, if any."""
        cancelled = self._requests.cancel()
        if cancelled:
            self.is_loading = False
        return cancelled

    def set_area_data(self, year: int | float, data: Mapping[str, Any]) -> AreaSnapshot | None:
        """Write a snapshot directly (wire tuples or ProvinceData) and make it current."""
        if not is_finite_number(year):
            logger.warning(f'set_area_data: Invalid year "{year}"')
            return None

        snapshot = parse_area_snapshot(data)
        self._store(year, snapshot)
        return snapshot

    def clear_area_data_cache(self) -> None:
        self._cache = {}
        self.current = None
        self.current_year = None
        self.is_loading = False

    def update_province_properties(self, snapshot: AreaSnapshot | None = None) -> int:
        """
        Denormalize a snapshot onto the territory records.

        Each record present in the snapshot gets fresh properties:
        r (ruler), c (culture), e (religion), g (religionGeneral), p
        (population) and capital. Records absent from the snapshot keep
        whatever they had. Returns the number of records annotated.
        """
        snapshot = snapshot if snapshot is not None else self.current
        territories = self._metadata.territories
        if snapshot is None or territories is None:
            return 0

        annotated = 0
        for record in territories:
            data = snapshot.get(record.id)
            if data is None:
                continue
            record.properties = {
                "r": data.ruler,
                "c": data.culture,
                "e": data.religion,
                "g": self._metadata.get_religion_general(data.religion),
                "p": data.population,
                "capital": data.capital,
            }
            annotated += 1

        logger.debug(f"Annotated {annotated}/{len(territories)} provinces")
        return annotated
