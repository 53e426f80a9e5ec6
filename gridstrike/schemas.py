from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

PLAYER_ONE = "player1"
PLAYER_TWO = "player2"
PLAYER_SLOTS = (PLAYER_ONE, PLAYER_TWO)

Phase = Literal["waiting", "build", "battle", "gameOver"]
UnitKind = Literal["launcher", "defense"]
GridSide = Literal["player", "opponent"]
TimerKind = Literal["build", "turn"]


class WireModel(BaseModel):
    """Base for everything that crosses the socket: camelCase on the wire, snake_case in code."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Tile(WireModel, frozen=True):
    x: int
    y: int
    # which player's grid the tile was drawn on (presentation only)
    grid: Optional[GridSide] = None

    def in_bounds(self, grid_size: int) -> bool:
        return 0 <= self.x < grid_size and 0 <= self.y < grid_size

    def manhattan(self, x: int, y: int) -> int:
        return abs(self.x - x) + abs(self.y - y)

    def __hash__(self):
        return hash((self.x, self.y))

    def __eq__(self, other):
        if isinstance(other, Tile):
            return self.x == other.x and self.y == other.y
        return False


# === Ruleset (static catalog, read-only) ===

class LauncherType(WireModel, frozen=True):
    id: str
    name: Optional[str] = None
    cost: int
    size: tuple[int, int] = (1, 1)
    range: int
    aoe: tuple[int, int] = (1, 1)
    mana_cost: int


class DefenseType(WireModel, frozen=True):
    id: str
    name: Optional[str] = None
    cost: int
    size: tuple[int, int] = (1, 1)
    coverage: int
    intercept_chance: float


class ManaRules(WireModel, frozen=True):
    start_mana: int
    mana_per_turn: int
    max_mana: int
    max_shots_per_turn: int = 1
    max_shots_per_launcher_per_turn: int = 1


class Ruleset(WireModel, frozen=True):
    grid_size: int
    budget: int
    mana: ManaRules
    launchers: tuple[LauncherType, ...]
    defenses: tuple[DefenseType, ...] = ()
    turn_duration: float = 30
    build_duration: float = 30

    @model_validator(mode="after")
    def _check_catalog(self) -> "Ruleset":
        if self.grid_size <= 0:
            raise ValueError("gridSize must be positive")
        if self.budget < 0:
            raise ValueError("budget must not be negative")
        if not 0 <= self.mana.start_mana <= self.mana.max_mana:
            raise ValueError("startMana must lie in [0, maxMana]")
        if self.mana.mana_per_turn < 0:
            raise ValueError("manaPerTurn must not be negative")
        ids = [t.id for t in self.launchers] + [t.id for t in self.defenses]
        if len(ids) != len(set(ids)):
            raise ValueError("unit type ids must be unique across launchers and defenses")
        for t in (*self.launchers, *self.defenses):
            if t.size[0] <= 0 or t.size[1] <= 0:
                raise ValueError(f"unit type {t.id} has a non-positive size")
            if t.cost < 0:
                raise ValueError(f"unit type {t.id} has a negative cost")
        for d in self.defenses:
            if not 0.0 <= d.intercept_chance <= 1.0:
                raise ValueError(f"defense {d.id} interceptChance must lie in [0, 1]")
        return self

    def unit_type(self, kind: str, type_id: str) -> "LauncherType|DefenseType|None":
        catalog = self.launchers if kind == "launcher" else self.defenses if kind == "defense" else ()
        return next((t for t in catalog if t.id == type_id), None)


# === Units ===

class UnitBase(WireModel):
    id: str
    type_id: str
    owner: str
    x: int
    y: int
    size: tuple[int, int] = (1, 1)
    destroyed: bool = False

    def footprint(self) -> list[tuple[int, int]]:
        w, h = self.size
        return [(self.x + dx, self.y + dy) for dy in range(h) for dx in range(w)]

    def occupies(self, x: int, y: int) -> bool:
        w, h = self.size
        return self.x <= x < self.x + w and self.y <= y < self.y + h


class LauncherUnit(UnitBase):
    kind: Literal["launcher"] = "launcher"
    range: int
    aoe: tuple[int, int] = (1, 1)
    mana_cost: int


class DefenseUnit(UnitBase):
    kind: Literal["defense"] = "defense"
    coverage: int
    intercept_chance: float


Unit = Annotated[Union[LauncherUnit, DefenseUnit], Field(discriminator="kind")]


class PlayerState(BaseModel):
    player_id: str
    units: List[Unit] = []
    budget_remaining: int
    mana: int
    shots_this_turn: int = 0
    shots_by_launcher: dict[str, int] = {}
    ready: bool = False
    connected: bool = True

    def launchers(self, alive_only: bool = False) -> list[LauncherUnit]:
        return [u for u in self.units if u.kind == "launcher" and not (alive_only and u.destroyed)]

    def defenses(self, alive_only: bool = False) -> list[DefenseUnit]:
        return [u for u in self.units if u.kind == "defense" and not (alive_only and u.destroyed)]

    def find_unit(self, unit_id: str) -> Optional[Unit]:
        return next((u for u in self.units if u.id == unit_id), None)


# === Client intents ===

class ProposedUnit(WireModel):
    """One entry of a placeUnits request.

    Accepts the legacy client shape ``{"type": "launcher", "launcherType": "light", "x": 1, "y": 2}``
    as well as ``{"kind": ..., "typeId": ...}``.
    """
    kind: UnitKind
    type_id: str
    x: int
    y: int

    @model_validator(mode="before")
    @classmethod
    def _legacy_shape(cls, data):
        if isinstance(data, dict) and "kind" not in data and "type" in data:
            data = dict(data)
            kind = data.pop("type")
            data["kind"] = kind
            legacy = data.pop("launcherType" if kind == "launcher" else "defenseType", None)
            if legacy is not None and "typeId" not in data and "type_id" not in data:
                data["typeId"] = legacy
        return data


class ShotRequest(WireModel):
    launcher_id: str
    path: List[Tile] = Field(default_factory=list, alias="pathTiles")


# === Outbound messages ===

class RejectReason(str, Enum):
    UNKNOWN_PLAYER = "UnknownPlayer"
    MATCH_FULL = "MatchFull"
    WRONG_PHASE = "WrongPhase"
    UNKNOWN_UNIT_TYPE = "UnknownUnitType"
    INSUFFICIENT_BUDGET = "InsufficientBudget"
    OUT_OF_BOUNDS = "OutOfBounds"
    UNIT_OVERLAP = "UnitOverlap"
    NO_LAUNCHERS = "NoLaunchers"
    NOT_YOUR_TURN = "NotYourTurn"
    LAUNCHER_NOT_FOUND = "LauncherNotFound"
    LAUNCHER_DESTROYED = "LauncherDestroyed"
    INSUFFICIENT_MANA = "InsufficientMana"
    MAX_SHOTS_PER_TURN = "MaxShotsPerTurn"
    MAX_SHOTS_PER_LAUNCHER = "MaxShotsPerLauncher"
    PATH_TOO_SHORT = "PathTooShort"
    PATH_NOT_ADJACENT = "PathNotAdjacent"
    PATH_OUT_OF_RANGE = "PathOutOfRange"
    PATH_OUT_OF_BOUNDS = "PathOutOfBounds"

    @property
    def message(self) -> str:
        return _REJECT_MESSAGES.get(self, self.value)


_REJECT_MESSAGES = {
    RejectReason.UNKNOWN_PLAYER: "Player not found",
    RejectReason.MATCH_FULL: "Room is full",
    RejectReason.WRONG_PHASE: "Action not allowed in the current phase",
    RejectReason.UNKNOWN_UNIT_TYPE: "Invalid unit type",
    RejectReason.INSUFFICIENT_BUDGET: "Insufficient budget",
    RejectReason.OUT_OF_BOUNDS: "Unit out of bounds",
    RejectReason.UNIT_OVERLAP: "Units overlap",
    RejectReason.NO_LAUNCHERS: "Every player needs at least one launcher on the field",
    RejectReason.NOT_YOUR_TURN: "Not your turn",
    RejectReason.LAUNCHER_NOT_FOUND: "Launcher not found",
    RejectReason.LAUNCHER_DESTROYED: "Launcher is destroyed",
    RejectReason.INSUFFICIENT_MANA: "Insufficient mana",
    RejectReason.MAX_SHOTS_PER_TURN: "Max shots per turn reached",
    RejectReason.MAX_SHOTS_PER_LAUNCHER: "Max shots per launcher reached",
    RejectReason.PATH_TOO_SHORT: "Path must have at least 2 tiles",
    RejectReason.PATH_NOT_ADJACENT: "Invalid path: tiles must be adjacent",
    RejectReason.PATH_OUT_OF_RANGE: "Invalid path: longer than launcher range",
    RejectReason.PATH_OUT_OF_BOUNDS: "Path out of bounds",
}


class Message(WireModel):
    type: str


class RoomUpdate(Message):
    type: Literal["roomUpdate"] = "roomUpdate"
    room_id: str
    player_id: Optional[str] = None
    players: int
    max_players: int = 2
    ready_players: List[str] = []


class BuildPhaseState(Message):
    type: Literal["buildPhaseState"] = "buildPhaseState"
    phase: Phase = "build"
    player_id: Optional[str] = None
    budget: int
    build_budget: int
    grid_size: int
    units: List[Unit] = []


class BattleState(Message):
    type: Literal["battleState"] = "battleState"
    phase: Phase = "battle"
    current_turn: Optional[str]
    mana: dict[str, int]
    units: List[Unit] = []


class ManaUpdate(Message):
    type: Literal["manaUpdate"] = "manaUpdate"
    player_id: str
    mana: int


class TurnChange(Message):
    type: Literal["turnChange"] = "turnChange"
    current_turn: str
    mana: dict[str, int]


class DestroyedUnit(WireModel):
    id: str
    x: int
    y: int


class DamageReport(WireModel):
    launchers: List[DestroyedUnit] = []
    defenses: List[DestroyedUnit] = []

    def is_empty(self) -> bool:
        return not self.launchers and not self.defenses


class ApplyDamage(Message):
    type: Literal["applyDamage"] = "applyDamage"
    attacker_id: str
    launcher_id: str
    path_tiles: List[Tile]
    damage: Optional[DamageReport] = None
    target_cells: List[Tile] = []
    intercepted: bool = False
    interception_defense: Optional[str] = None
    intercepted_at: Optional[Tile] = None


class ShotRejected(Message):
    type: Literal["shotRejected"] = "shotRejected"
    reason: str
    code: RejectReason


class GameOver(Message):
    type: Literal["gameOver"] = "gameOver"
    winner: str


class ErrorMessage(Message):
    type: Literal["error"] = "error"
    message: str
    code: Optional[RejectReason] = None


class MatchListItem(WireModel):
    match_id: str
    phase: Phase
    players: int
    has_open_slot: bool
    created_at: int


class MatchListResponse(WireModel):
    matches: List[MatchListItem] = []


# === Results returned by the match core ===

@dataclass
class Outbound:
    """A message plus its recipient; ``to=None`` broadcasts to both players."""
    message: Message
    to: Optional[str] = None


@dataclass
class TimerCommand:
    kind: TimerKind
    # None cancels the timer of this kind
    delay: Optional[float] = None


@dataclass
class Outcome:
    accepted: bool
    events: list[Outbound] = field(default_factory=list)
    reason: Optional[RejectReason] = None
    detail: str = ""
    player_id: Optional[str] = None
    timers: list[TimerCommand] = field(default_factory=list)

    @staticmethod
    def reject(reason: RejectReason, to: Optional[str], *, shot: bool = False, detail: str = "") -> "Outcome":
        text = detail or reason.message
        msg: Message = ShotRejected(reason=text, code=reason) if shot else ErrorMessage(message=text, code=reason)
        events = [Outbound(message=msg, to=to)] if to else []
        return Outcome(accepted=False, events=events, reason=reason, detail=text)
