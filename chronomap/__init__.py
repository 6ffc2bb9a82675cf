"""
chronomap - State core for an interactive historical map.

Holds and derives everything a historical map view needs between the API and
the renderer:

- ViewportController: camera state with range validation and fly-to intent
- AreaDataCache: year-keyed territory attributes with cancelable loading
- MetadataStore: entity names, colors and wiki titles plus province geometry
- EntityOutlineEngine: merged outline of one ruler/culture/religion
- LabelPlacementEngine: one label per entity group
- MarkerCache: current-year markers with type filtering
- MapSession: the service object wiring the above together
"""

from chronomap.session import MapSession
from chronomap.types import Dimension

__version__ = "1.0.0"

__all__ = [
    "Dimension",
    "MapSession",
]
