"""Small catalogs and helpers shared by the tests."""

from typing import Any

from gridstrike.schemas import PLAYER_ONE, PLAYER_TWO, ProposedUnit, Ruleset, Tile
from gridstrike.services.match import MatchSession
from gridstrike.utils.ids import IDGenerator


def ruleset_dict(**mana: Any) -> dict:
    rules = {
        "startMana": 10,
        "manaPerTurn": 3,
        "maxMana": 20,
        "maxShotsPerTurn": 1,
        "maxShotsPerLauncherPerTurn": 1,
    }
    rules.update(mana)
    return {
        "gridSize": 10,
        "budget": 10,
        "mana": rules,
        "launchers": [
            {"id": "std", "cost": 5, "size": [1, 1], "range": 5, "aoe": [3, 3], "manaCost": 2},
            {"id": "big", "cost": 6, "size": [2, 2], "range": 8, "aoe": [1, 1], "manaCost": 4},
        ],
        "defenses": [
            {"id": "flak", "cost": 2, "size": [1, 1], "coverage": 2, "interceptChance": 0.5},
            {"id": "wall", "cost": 3, "size": [2, 1], "coverage": 1, "interceptChance": 1.0},
        ],
        "turnDuration": 20,
        "buildDuration": 30,
    }


def small_ruleset(**mana: Any) -> Ruleset:
    return Ruleset.model_validate(ruleset_dict(**mana))


class Rolls:
    """Scripted random source: hands out the given rolls, then ``default``."""

    def __init__(self, *rolls: float, default: float = 0.99):
        self.rolls = list(rolls)
        self.default = default
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        if self.rolls:
            return self.rolls.pop(0)
        return self.default


def launcher(x: int, y: int, type_id: str = "std") -> ProposedUnit:
    return ProposedUnit(kind="launcher", type_id=type_id, x=x, y=y)


def defense(x: int, y: int, type_id: str = "flak") -> ProposedUnit:
    return ProposedUnit(kind="defense", type_id=type_id, x=x, y=y)


def tiles(*coords: tuple[int, int]) -> list[Tile]:
    return [Tile(x=x, y=y) for x, y in coords]


def new_session(ruleset: Ruleset | None = None, rng=None) -> MatchSession:
    s = MatchSession("T1", ruleset or small_ruleset(), rng=rng or Rolls(), ids=IDGenerator())
    s.add_player()
    s.add_player()
    return s


def battle_session(ruleset: Ruleset | None = None, rng=None,
                   p1_units=None, p2_units=None) -> MatchSession:
    """Two players, units placed, battle started with player1 to move."""
    s = new_session(ruleset, rng)
    s.place_units(PLAYER_ONE, p1_units if p1_units is not None else [launcher(0, 0)])
    s.place_units(PLAYER_TWO, p2_units if p2_units is not None else [launcher(5, 5)])
    s.set_ready(PLAYER_ONE)
    out = s.set_ready(PLAYER_TWO)
    assert out.accepted, out.detail
    return s
