"""
Loop detection over a run's hex path.

A loop closes when the runner re-enters a cell they visited at least
`min_loop_length` steps earlier. Only the first closure (earliest closing
index) counts; shorter backtracks are ignored but still move the "last seen"
reference point forward.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence


@dataclass(frozen=True)
class DetectedLoop:
    loop_start_index: int
    loop_end_index: int
    boundary_hexes: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "loop_start_index": self.loop_start_index,
            "loop_end_index": self.loop_end_index,
            "boundary_hexes": list(self.boundary_hexes),
        }


def detect_first_loop(run_hexes: Sequence[str], min_loop_length: int) -> Optional[DetectedLoop]:
    """
    Return the first qualifying loop in `run_hexes`, or None.

    The boundary is the inclusive slice between the two visits, so it starts
    and ends on the same cell.
    """
    if isinstance(min_loop_length, bool) or not isinstance(min_loop_length, int) or min_loop_length < 1:
        raise ValueError(f"min_loop_length must be a positive integer, got {min_loop_length!r}")

    last_seen: Dict[str, int] = {}

    for j, h in enumerate(run_hexes):
        i = last_seen.get(h)
        if i is not None and j - i >= min_loop_length:
            return DetectedLoop(
                loop_start_index=i,
                loop_end_index=j,
                boundary_hexes=list(run_hexes[i:j + 1]),
            )
        last_seen[h] = j

    return None
