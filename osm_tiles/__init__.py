"""OSM Tile Grid Engine.

Turns OpenStreetMap vector data for a geographic region into a square
grid of classified tiles (road, building, water, green space, ...)
through a staged, cancellable loading pipeline.
"""

__version__ = "0.1.0"
