from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence

from gridstrike.schemas import DefenseUnit, Tile


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass
class Interception:
    intercepted: bool = False
    defense_id: Optional[str] = None
    tile: Optional[Tile] = None


def in_coverage(defense: DefenseUnit, tile: Tile) -> bool:
    # coverage is measured from the defense's anchor cell
    return tile.manhattan(defense.x, defense.y) <= defense.coverage


def resolve_interception(path: Sequence[Tile], defenses: Iterable[DefenseUnit], rng: RandomSource) -> Interception:
    """Walk the path tile by tile and roll every covering defense once per tile.

    The first successful roll stops the shot; defenses are tried in their placement order.
    """
    live = [d for d in defenses if not d.destroyed]
    for tile in path:
        for defense in live:
            if not in_coverage(defense, tile):
                continue
            roll = rng.random()
            if roll <= defense.intercept_chance:
                return Interception(intercepted=True, defense_id=defense.id, tile=tile)
    return Interception()
