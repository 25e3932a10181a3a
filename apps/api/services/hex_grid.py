"""
Hex Grid

The geometric oracle behind territory capture. Everything else in the loop
pipeline talks to the grid through `HexGrid`, so any hierarchical hex tiling
can back it; production uses Uber's H3 via the `h3` package.

Conventions:
- Cell ids are strings.
- `center_of` returns (lat, lng).
- Polygon rings passed to `fill_polygon` are (lng, lat) pairs (GeoJSON order).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence, Set, Tuple

import h3


class DegenerateGeometryError(ValueError):
    """The grid could not rasterize a ring (too few distinct vertices, invalid shape)."""


class HexGrid(ABC):
    @abstractmethod
    def cell_at(self, lat: float, lng: float, resolution: int) -> str:
        ...

    @abstractmethod
    def center_of(self, cell: str) -> Tuple[float, float]:
        ...

    @abstractmethod
    def fill_polygon(self, ring: Sequence[Tuple[float, float]], resolution: int) -> Set[str]:
        """Cells whose centers fall inside the closed (lng, lat) ring."""

    @abstractmethod
    def path_between(self, start: str, end: str) -> List[str]:
        """Contiguous cells from start to end, both endpoints included."""


class H3HexGrid(HexGrid):
    def cell_at(self, lat: float, lng: float, resolution: int) -> str:
        return h3.latlng_to_cell(lat, lng, resolution)

    def center_of(self, cell: str) -> Tuple[float, float]:
        lat, lng = h3.cell_to_latlng(cell)
        return lat, lng

    def fill_polygon(self, ring: Sequence[Tuple[float, float]], resolution: int) -> Set[str]:
        geo = {"type": "Polygon", "coordinates": [[(lng, lat) for lng, lat in ring]]}
        try:
            return set(h3.geo_to_cells(geo, resolution))
        except (h3.H3BaseException, ValueError) as e:
            raise DegenerateGeometryError(f"Cannot rasterize ring of {len(ring)} vertices: {e}") from e

    def path_between(self, start: str, end: str) -> List[str]:
        return list(h3.grid_path_cells(start, end))


_default_grid = H3HexGrid()


def get_hex_grid() -> HexGrid:
    return _default_grid
