import random

import pytest

from gridstrike.schemas import RejectReason, Tile
from gridstrike.services.path import is_adjacent, validate_path
from rulesets import tiles


def test_adjacency_is_eight_directional():
    c = Tile(x=3, y=3)
    for dx in (-1, 0, 1):
        for dy in (-1, 0, 1):
            other = Tile(x=3 + dx, y=3 + dy)
            assert is_adjacent(c, other) == ((dx, dy) != (0, 0))
    assert not is_adjacent(c, Tile(x=5, y=3))


def test_legal_diagonal_path():
    assert validate_path(tiles((0, 0), (1, 1), (2, 2), (2, 3)), 5, 10) is None


@pytest.mark.parametrize("path", [[], tiles((1, 1))])
def test_too_short(path):
    assert validate_path(path, 5, 10) == RejectReason.PATH_TOO_SHORT


def test_gap_is_not_adjacent():
    assert validate_path(tiles((0, 0), (2, 0)), 5, 10) == RejectReason.PATH_NOT_ADJACENT


def test_repeated_tile_is_not_adjacent():
    assert validate_path(tiles((0, 0), (0, 0), (1, 0)), 5, 10) == RejectReason.PATH_NOT_ADJACENT


def test_range_counts_tiles_not_distance():
    # a zig-zag of 5 tiles only travels 1 cell away but still uses the full range
    zigzag = tiles((0, 0), (1, 0), (0, 0), (1, 0), (0, 0))
    assert validate_path(zigzag, 5, 10) is None
    assert validate_path(zigzag + tiles((1, 0)), 5, 10) == RejectReason.PATH_OUT_OF_RANGE


def test_exact_range_is_allowed():
    straight = [Tile(x=i, y=0) for i in range(5)]
    assert validate_path(straight, 5, 10) is None
    assert validate_path(straight, 4, 10) == RejectReason.PATH_OUT_OF_RANGE


@pytest.mark.parametrize("bad", [(-1, 0), (0, -1), (10, 3), (3, 10)])
def test_out_of_bounds(bad):
    x, y = bad
    start = Tile(x=min(max(x, 0), 9), y=min(max(y, 0), 9))
    path = [start, Tile(x=x, y=y)]
    assert validate_path(path, 5, 10) == RejectReason.PATH_OUT_OF_BOUNDS


def test_adjacency_checked_before_range():
    path = tiles((0, 0), (3, 3), (4, 4), (5, 5), (6, 6), (7, 7))
    assert validate_path(path, 3, 10) == RejectReason.PATH_NOT_ADJACENT


def test_accepted_random_walks_hold_invariants():
    rng = random.Random(7)
    grid, max_range = 8, 6
    accepted = 0
    for _ in range(300):
        x, y = rng.randrange(-1, grid + 1), rng.randrange(-1, grid + 1)
        path = [Tile(x=x, y=y)]
        for _ in range(rng.randrange(0, 9)):
            x += rng.choice((-1, 0, 1, 2))
            y += rng.choice((-1, 0, 1))
            path.append(Tile(x=x, y=y))
        if validate_path(path, max_range, grid) is None:
            accepted += 1
            assert 2 <= len(path) <= max_range
            assert all(is_adjacent(a, b) for a, b in zip(path, path[1:]))
            assert all(t.in_bounds(grid) for t in path)
    assert accepted > 0
