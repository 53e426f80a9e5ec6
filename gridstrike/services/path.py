from typing import Optional, Sequence

from gridstrike.schemas import RejectReason, Tile


def is_adjacent(a: Tile, b: Tile) -> bool:
    """8方向の隣接判定。同じタイルは隣接とみなさない。"""
    dx = abs(a.x - b.x)
    dy = abs(a.y - b.y)
    return max(dx, dy) == 1


def validate_path(tiles: Sequence[Tile], max_range: int, grid_size: int) -> Optional[RejectReason]:
    """Check a firing path and return the first violation, or None when the path is legal.

    Range is the number of tiles in the path, not a geometric distance.
    """
    if not tiles or len(tiles) < 2:
        return RejectReason.PATH_TOO_SHORT
    for prev, cur in zip(tiles, tiles[1:]):
        if not is_adjacent(prev, cur):
            return RejectReason.PATH_NOT_ADJACENT
    if len(tiles) > max_range:
        return RejectReason.PATH_OUT_OF_RANGE
    for t in tiles:
        if not t.in_bounds(grid_size):
            return RejectReason.PATH_OUT_OF_BOUNDS
    return None
