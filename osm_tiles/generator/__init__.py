"""Classification and rasterization.

- classifier: Tag sets to tile types and overlap priorities
- rasterizer: Classified geometry to a dense ``TileGrid``
"""

from osm_tiles.generator.classifier import (
    Classification,
    ClassifiedElement,
    classify,
    classify_elements,
)
from osm_tiles.generator.rasterizer import GridGenerator, generate

__all__ = [
    "Classification",
    "ClassifiedElement",
    "GridGenerator",
    "classify",
    "classify_elements",
    "generate",
]
