"""Core utilities and shared infrastructure.

- config: Engine settings loading and validation
- constants: Named constants for services, limits and tuning
- exceptions: Custom exception hierarchy
- grid_cache: Thread-safe LRU cache of generated grids
"""
