"""
Enclosed Area Resolver

Given a loop boundary (cells in visitation order), find the grid cells it
encloses. The boundary cell centers form the polygon; the grid rasterizes it;
the boundary itself is a wall, not territory.

Degenerate input is never an error here:
- fewer than 4 boundary cells -> nothing enclosed
- rings the grid cannot rasterize -> nothing enclosed (logged)
- self-intersecting rings -> whatever the grid's point-in-polygon test yields

Cost grows with perimeter and resolution, so both are capped by settings and
the async entry point runs the rasterization in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from core.config import settings
from services.hex_grid import DegenerateGeometryError, HexGrid, get_hex_grid

logger = logging.getLogger(__name__)

MIN_BOUNDARY_HEXES = 4


def boundary_ring(boundary_hexes: Sequence[str], grid: HexGrid) -> List[Tuple[float, float]]:
    """Closed (lng, lat) ring through the boundary cell centers, in visitation order."""
    ring: List[Tuple[float, float]] = []
    for cell in boundary_hexes:
        lat, lng = grid.center_of(cell)
        ring.append((lng, lat))

    if ring[0] != ring[-1]:
        ring.append(ring[0])
    return ring


def enclosed_hexes(
    boundary_hexes: Sequence[str],
    resolution: int,
    grid: Optional[HexGrid] = None,
    max_boundary_hexes: Optional[int] = None,
    max_resolution: Optional[int] = None,
) -> List[str]:
    """Synchronous core of `compute_enclosed_hexes`. Sorted, boundary excluded."""
    max_resolution = settings.MAX_HEX_RESOLUTION if max_resolution is None else max_resolution
    max_boundary_hexes = settings.MAX_BOUNDARY_HEXES if max_boundary_hexes is None else max_boundary_hexes

    if len(boundary_hexes) < MIN_BOUNDARY_HEXES:
        return []

    if resolution > max_resolution:
        raise ValueError(f"resolution {resolution} exceeds the configured maximum {max_resolution}")

    if len(boundary_hexes) > max_boundary_hexes:
        logger.warning(
            f"Boundary of {len(boundary_hexes)} cells exceeds cap {max_boundary_hexes}; skipping area fill"
        )
        return []

    grid = grid or get_hex_grid()
    ring = boundary_ring(boundary_hexes, grid)

    try:
        filled = grid.fill_polygon(ring, resolution)
    except DegenerateGeometryError as e:
        logger.debug(f"Degenerate loop boundary, nothing enclosed: {e}")
        return []

    boundary_set = set(boundary_hexes)
    return sorted(cell for cell in filled if cell not in boundary_set)


async def compute_enclosed_hexes(
    boundary_hexes: Sequence[str],
    resolution: int,
    grid: Optional[HexGrid] = None,
) -> List[str]:
    """
    Cells strictly inside the loop described by `boundary_hexes`.

    The boundary may or may not repeat its first cell at the end. Callers own
    the timeout (see services.loop_analysis).
    """
    # A caller timeout stops the wait at once; the thread itself runs to completion.
    return await asyncio.to_thread(enclosed_hexes, list(boundary_hexes), resolution, grid)
