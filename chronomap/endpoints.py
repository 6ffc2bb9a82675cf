"""
API endpoint paths used by the map state core.

Paths are relative to `settings.api.base_url`; query parameters are returned
separately so the transport can encode them.
"""

from typing import Any


def _year_segment(year: int | float) -> str:
    # 1000.0 and 1000 must address the same resource
    if isinstance(year, float) and year.is_integer():
        year = int(year)
    return str(year)


class AREAS:
    """Per-year territory attributes."""

    @staticmethod
    def by_year(year: int | float) -> str:
        return f"/areas/{_year_segment(year)}"


class MARKERS:
    """Point features."""

    LIST = "/markers"

    @staticmethod
    def by_year(year: int | float, limit: int) -> tuple[str, dict[str, Any]]:
        return MARKERS.LIST, {"year": _year_segment(year), "limit": limit}


class METADATA:
    """Combined entity metadata and province geometry."""

    LIST = "/metadata"
    INIT_PARAMS: dict[str, Any] = {
        "type": "g",
        "f": "provinces,ruler,culture,religion,capital,province,religionGeneral",
    }

    @staticmethod
    def init() -> tuple[str, dict[str, Any]]:
        return METADATA.LIST, dict(METADATA.INIT_PARAMS)
