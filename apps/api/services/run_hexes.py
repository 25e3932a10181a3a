"""
GPS trajectory -> hex path.

Each sample maps to a cell; gaps between consecutive distinct cells are
filled with the grid path so the runner's path stays contiguous, then
sequential repeats are collapsed. The result is the input to loop detection
and is stored per run as RunHex rows.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from services.hex_grid import HexGrid, get_hex_grid
from services.zone_cycle import parse_instant

logger = logging.getLogger(__name__)

H3_RESOLUTION_MVP = 8


class GpsSample(NamedTuple):
    time: datetime  # aware UTC
    lat: float
    lng: float


def _coordinate(value: Any, limit: float) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or abs(value) > limit:
        return None
    return float(value)


def parse_sample(point: Any) -> Optional[GpsSample]:
    """A usable {lat, lng, time} sample, or None if any part is missing or malformed."""
    if not isinstance(point, dict):
        return None
    time = parse_instant(point.get("time"))
    lat = _coordinate(point.get("lat"), 90.0)
    lng = _coordinate(point.get("lng"), 180.0)
    if time is None or lat is None or lng is None:
        return None
    return GpsSample(time, lat, lng)


def dedupe_sequential(cells: Sequence[str]) -> List[str]:
    out: List[str] = []
    for cell in cells:
        if not out or out[-1] != cell:
            out.append(cell)
    return out


def gps_to_run_hexes(
    raw_data: Optional[Sequence[Dict[str, Any]]],
    resolution: int = H3_RESOLUTION_MVP,
    grid: Optional[HexGrid] = None,
) -> List[str]:
    """
    Convert {lat, lng, time} samples into a continuous cell path.

    Samples are ordered by UTC time first; the client may upload them out of
    order and with mixed offset styles. Malformed samples are skipped.
    """
    if not raw_data:
        return []

    samples = [parse_sample(p) for p in raw_data]
    usable = [s for s in samples if s is not None]
    if len(usable) < len(samples):
        logger.warning(f"Skipped {len(samples) - len(usable)} malformed GPS sample(s) of {len(samples)}")
    if not usable:
        return []

    grid = grid or get_hex_grid()
    ordered = sorted(usable, key=lambda s: s.time)
    point_cells = [grid.cell_at(s.lat, s.lng, resolution) for s in ordered]

    path: List[str] = [point_cells[0]]
    for a, b in zip(point_cells, point_cells[1:]):
        if a == b:
            continue
        try:
            segment = grid.path_between(a, b)
        except Exception as e:
            raise ValueError(f"Failed to compute grid path from {a} to {b}: {e}") from e
        # The segment starts on the cell already at the end of the path.
        path.extend(segment[1:])

    return dedupe_sequential(path)
