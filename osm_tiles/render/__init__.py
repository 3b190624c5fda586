"""Rendering hints (colours, nominal heights) for generated grids."""
