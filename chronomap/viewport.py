"""
Viewport controller.

Holds the camera state, keeps every field inside its valid range whatever
the input, and records fly-to requests for the rendering side to animate.
Also provides the pure position (de)serialization used for shareable URLs.
"""

import math
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from loguru import logger

from chronomap.types import FlyToOptions, ViewportState, is_finite_number

DEFAULT_VIEWPORT = ViewportState()

MAX_ZOOM = 22.0
MAX_PITCH = 85.0
DEFAULT_FLY_TO_DURATION = 2000.0  # milliseconds

VIEWPORT_FIELDS = tuple(DEFAULT_VIEWPORT.to_dict())

# URL position string precision
COORDINATE_PRECISION = 6
ZOOM_PRECISION = 2


def clamp_latitude(lat: float) -> float:
    """Clamp to [-90, 90]; non-finite input yields the default latitude."""
    if not is_finite_number(lat):
        return DEFAULT_VIEWPORT.latitude
    return max(-90.0, min(90.0, lat))


def normalize_longitude(lng: float) -> float:
    """Wrap into [-180, 180]; non-finite input yields the default longitude."""
    if not is_finite_number(lng):
        return DEFAULT_VIEWPORT.longitude
    normalized = math.fmod(lng, 360.0)
    if normalized > 180.0:
        normalized -= 360.0
    if normalized < -180.0:
        normalized += 360.0
    return normalized


def clamp_zoom(zoom: float, min_zoom: float = 0.0, max_zoom: float = MAX_ZOOM) -> float:
    """Clamp to [min_zoom, max_zoom]; non-finite input yields the default zoom, clamped."""
    if not is_finite_number(zoom):
        zoom = DEFAULT_VIEWPORT.zoom
    return max(min_zoom, min(max_zoom, zoom))


def normalize_bearing(bearing: float) -> float:
    """Wrap into [0, 360)."""
    normalized = bearing % 360.0
    # -1e-20 % 360 rounds to 360.0
    return 0.0 if normalized >= 360.0 else normalized


def clamp_pitch(pitch: float) -> float:
    return max(0.0, min(MAX_PITCH, pitch))


def is_valid_viewport(viewport: Mapping[str, Any] | ViewportState) -> bool:
    """True if every viewport field is present and a finite number."""
    if isinstance(viewport, ViewportState):
        viewport = viewport.to_dict()
    return all(is_finite_number(viewport.get(name)) for name in VIEWPORT_FIELDS)


class ViewportController:
    """
    Camera state with validation and fly-to intent.

    The controller never animates anything: `fly_to` only stores the target
    and raises `is_flying`; the renderer performs the transition and calls
    `clear_fly_to` when it is done.
    """

    def __init__(self, viewport: ViewportState | None = None):
        self.viewport = replace(viewport) if viewport else replace(DEFAULT_VIEWPORT)
        self.is_flying = False
        self.fly_to_target: FlyToOptions | None = None

    def set_viewport(self, partial: Mapping[str, Any] | None = None, **fields: Any) -> ViewportState:
        """
        Merge a partial viewport into the current one.

        Accepts a mapping, keyword arguments, or both. Every field is clamped
        or normalized; non-finite values fall back to defaults (latitude,
        longitude, zoom) or are ignored (the rest).
        """
        updates = {**(partial or {}), **fields}
        unknown = set(updates) - set(VIEWPORT_FIELDS)
        if unknown:
            logger.warning(f"set_viewport: ignoring unknown fields {sorted(unknown)}")

        current = replace(self.viewport)

        if "latitude" in updates:
            current.latitude = clamp_latitude(updates["latitude"])

        if "longitude" in updates:
            current.longitude = normalize_longitude(updates["longitude"])

        if "zoom" in updates:
            current.zoom = clamp_zoom(updates["zoom"], current.min_zoom)

        min_zoom = updates.get("min_zoom")
        if is_finite_number(min_zoom):
            current.min_zoom = max(0.0, min(MAX_ZOOM, min_zoom))
            if current.zoom < current.min_zoom:
                current.zoom = current.min_zoom

        bearing = updates.get("bearing")
        if is_finite_number(bearing):
            current.bearing = normalize_bearing(bearing)

        pitch = updates.get("pitch")
        if is_finite_number(pitch):
            current.pitch = clamp_pitch(pitch)

        for name in ("width", "height"):
            value = updates.get(name)
            if is_finite_number(value):
                setattr(current, name, max(0.0, value))

        self.viewport = current
        return current

    def fly_to(self, options: FlyToOptions | Mapping[str, Any]) -> FlyToOptions | None:
        """
        Record an animated transition to a target location.

        Returns the stored (clamped) target, or None when the target
        latitude/longitude are not finite.
        """
        if isinstance(options, Mapping):
            options = FlyToOptions(
                latitude=options.get("latitude"),
                longitude=options.get("longitude"),
                zoom=options.get("zoom"),
                duration=options.get("duration", DEFAULT_FLY_TO_DURATION),
                bearing=options.get("bearing"),
                pitch=options.get("pitch"),
            )

        if not (is_finite_number(options.latitude) and is_finite_number(options.longitude)):
            logger.warning("fly_to: Invalid latitude or longitude provided")
            return None

        duration = options.duration
        if not is_finite_number(duration) or duration < 0:
            duration = DEFAULT_FLY_TO_DURATION

        target = FlyToOptions(
            latitude=clamp_latitude(options.latitude),
            longitude=normalize_longitude(options.longitude),
            zoom=clamp_zoom(options.zoom, self.viewport.min_zoom) if options.zoom is not None else None,
            duration=duration,
            bearing=normalize_bearing(options.bearing) if is_finite_number(options.bearing) else None,
            pitch=clamp_pitch(options.pitch) if is_finite_number(options.pitch) else None,
        )

        self.is_flying = True
        self.fly_to_target = target
        return target

    def clear_fly_to(self) -> None:
        """Called by the renderer once the transition has finished."""
        self.is_flying = False
        self.fly_to_target = None

    def reset(self) -> None:
        self.viewport = replace(DEFAULT_VIEWPORT)
        self.clear_fly_to()


# =============================================================================
# Position (de)serialization
# =============================================================================


def format_position(viewport: Mapping[str, Any] | ViewportState) -> str:
    """
    Format a viewport as a `lat,lng,zoom` position string.

    Missing or non-finite values are replaced by defaults.
    """
    if isinstance(viewport, ViewportState):
        viewport = viewport.to_dict()

    def _value(name: str) -> float:
        value = viewport.get(name)
        return value if is_finite_number(value) else getattr(DEFAULT_VIEWPORT, name)

    return (
        f"{_value('latitude'):.{COORDINATE_PRECISION}f},"
        f"{_value('longitude'):.{COORDINATE_PRECISION}f},"
        f"{_value('zoom'):.{ZOOM_PRECISION}f}"
    )


def parse_position(text: str | None) -> dict[str, float]:
    """
    Parse a `lat,lng,zoom` position string.

    Returns only the fields that parse and fall within range; an empty dict
    for malformed input.
    """
    if not text or not isinstance(text, str):
        return {}

    parts = text.strip().split(",")
    if len(parts) < 3:
        return {}

    def _float(part: str) -> float | None:
        try:
            value = float(part)
        except ValueError:
            return None
        return value if math.isfinite(value) else None

    latitude, longitude, zoom = (_float(p) for p in parts[:3])
    result = {}

    if latitude is not None and -90 <= latitude <= 90:
        result["latitude"] = latitude
    if longitude is not None and -180 <= longitude <= 180:
        result["longitude"] = longitude
    if zoom is not None and 0 <= zoom <= MAX_ZOOM:
        result["zoom"] = zoom

    return result


def viewports_approximately_equal(
    a: Mapping[str, Any],
    b: Mapping[str, Any],
    tolerance: float = 0.000001,
) -> bool:
    """Compare latitude/longitude within `tolerance` and zoom within 0.01."""

    def _close(name: str, tol: float) -> bool:
        va, vb = a.get(name), b.get(name)
        if va is None and vb is None:
            return True
        if va is None or vb is None:
            return False
        return abs(va - vb) <= tol

    return _close("latitude", tolerance) and _close("longitude", tolerance) and _close("zoom", 0.01)
