import os
import random
import sys
import threading
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, Iterable, Optional, Sequence

from gridstrike.schemas import (
    PLAYER_ONE,
    PLAYER_SLOTS,
    ApplyDamage,
    BattleState,
    BuildPhaseState,
    DefenseType,
    DefenseUnit,
    ErrorMessage,
    GameOver,
    LauncherType,
    LauncherUnit,
    ManaUpdate,
    MatchListItem,
    MatchListResponse,
    Outbound,
    Outcome,
    Phase,
    PlayerState,
    ProposedUnit,
    RejectReason,
    RoomUpdate,
    Ruleset,
    Tile,
    TimerCommand,
    TimerKind,
    TurnChange,
    Unit,
)
from gridstrike.services.aoe import resolve_area_damage
from gridstrike.services.interception import RandomSource, resolve_interception
from gridstrike.services.ledger import ResourceLedger
from gridstrike.services.path import validate_path
from gridstrike.services.timers import TimerService
from gridstrike.services.turn import TurnScheduler
from gridstrike.services.win import evaluate_winner, opponent_of
from gridstrike.utils import audit
from gridstrike.utils.audit import match_write
from gridstrike.utils.ids import IDGenerator, RoomIdGenerator

# Debug flag: enable when running tests or when env var GRIDSTRIKE_DEBUG is set
DEBUG = bool(os.getenv('GRIDSTRIKE_DEBUG')) or ('unittest' in sys.modules) or ('PYTEST_CURRENT_TEST' in os.environ)


def _dbg(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


class MatchSession:
    """Rules engine for one match.

    Every public operation takes one intent, validates it against the current state and
    returns an ``Outcome``: the events to deliver plus the timer commands to apply.
    A rejected intent leaves the state untouched and carries a single message for the
    player who sent it. Callers serialize access (see ``MatchStore.dispatch``).
    """

    def __init__(self, match_id: str, ruleset: Ruleset, *,
                 rng: Optional[RandomSource] = None,
                 ids: Optional[IDGenerator] = None,
                 first_player: str = PLAYER_ONE):
        self.match_id = match_id
        self.ruleset = ruleset
        self.rng: RandomSource = rng if rng is not None else random.Random()
        self.ids = ids or IDGenerator()
        self.phase: Phase = "waiting"
        self.players: Dict[str, PlayerState] = {}
        self.ledger = ResourceLedger(ruleset)
        self.scheduler = TurnScheduler(ruleset, self.ledger, first_player)
        self.winner: Optional[str] = None

    @property
    def current_turn(self) -> Optional[str]:
        return self.scheduler.current_turn

    # --- lobby ---
    def add_player(self) -> Outcome:
        if self.phase == "gameOver" or len(self.players) >= len(PLAYER_SLOTS):
            return Outcome.reject(RejectReason.MATCH_FULL, None)
        pid = next(p for p in PLAYER_SLOTS if p not in self.players)
        self.players[pid] = PlayerState(
            player_id=pid,
            budget_remaining=self.ruleset.budget,
            mana=self.ruleset.mana.start_mana,
        )
        _dbg(f"[{self.match_id}] {pid} joined ({len(self.players)}/2)")
        match_write(self.match_id, {"type": "player_joined", "player": pid})
        out = Outcome(accepted=True, player_id=pid)
        out.events.append(Outbound(self._room_update(pid), to=pid))
        if len(self.players) == len(PLAYER_SLOTS):
            out.events.append(Outbound(self._room_update()))
            self._start_build(out)
        return out

    def disconnect(self, player_id: str) -> Outcome:
        player = self.players.get(player_id)
        if player is None:
            return Outcome.reject(RejectReason.UNKNOWN_PLAYER, None)
        player.connected = False
        match_write(self.match_id, {"type": "player_left", "player": player_id, "phase": self.phase})
        out = Outcome(accepted=True, events=[Outbound(self._room_update())], player_id=player_id)
        # leaving a running match forfeits it to whoever is still connected
        opponent = self.players.get(opponent_of(player_id))
        if self.phase in ("build", "battle") and opponent is not None and opponent.connected:
            self._finish(out, opponent.player_id, reason="forfeit")
        return out

    def all_disconnected(self) -> bool:
        return all(not p.connected for p in self.players.values())

    # --- build phase ---
    def place_units(self, player_id: str, proposed: Iterable[ProposedUnit]) -> Outcome:
        player = self.players.get(player_id)
        if player is None:
            return Outcome.reject(RejectReason.UNKNOWN_PLAYER, None)
        if self.phase != "build":
            return Outcome.reject(RejectReason.WRONG_PHASE, player_id, detail="Not in build phase")
        proposed = list(proposed)

        resolved: list[tuple[ProposedUnit, LauncherType | DefenseType]] = []
        new_cost = 0
        for p in proposed:
            t = self.ruleset.unit_type(p.kind, p.type_id)
            if t is None:
                return Outcome.reject(RejectReason.UNKNOWN_UNIT_TYPE, player_id, detail=f"Invalid unit type: {p.type_id}")
            resolved.append((p, t))
            new_cost += t.cost

        reason = self.ledger.check_placement(player, new_cost)
        if reason:
            return Outcome.reject(reason, player_id)

        occupied: set[tuple[int, int]] = set()
        for p, t in resolved:
            cells = self._footprint(p.x, p.y, t.size)
            if not all(0 <= x < self.ruleset.grid_size and 0 <= y < self.ruleset.grid_size for x, y in cells):
                return Outcome.reject(RejectReason.OUT_OF_BOUNDS, player_id)
            if occupied.intersection(cells):
                return Outcome.reject(RejectReason.UNIT_OVERLAP, player_id)
            occupied.update(cells)

        units = [self._make_unit(player_id, p.x, p.y, t) for p, t in resolved]
        remaining = self.ledger.apply_placement(player, units, new_cost)
        _dbg(f"[{self.match_id}] {player_id} placed {len(units)} units, budget left {remaining}")
        match_write(self.match_id, {
            "type": "units_placed",
            "player": player_id,
            "units": [{"id": u.id, "kind": u.kind, "type": u.type_id, "pos": [u.x, u.y]} for u in units],
            "budget_remaining": remaining,
        })
        return Outcome(accepted=True, events=[Outbound(self._build_state(player), to=player_id)], player_id=player_id)

    def set_ready(self, player_id: str) -> Outcome:
        player = self.players.get(player_id)
        if player is None:
            return Outcome.reject(RejectReason.UNKNOWN_PLAYER, None)
        if self.phase != "build":
            return Outcome.reject(RejectReason.WRONG_PHASE, player_id, detail="Not in build phase")
        player.ready = True
        out = Outcome(accepted=True, events=[Outbound(self._room_update())], player_id=player_id)
        if len(self.players) == len(PLAYER_SLOTS) and all(p.ready for p in self.players.values()):
            self._try_start_battle(out)
        return out

    def force_start_battle(self, player_id: str) -> Outcome:
        """Ready-to-start timeout path: everybody is marked ready, the launcher check still applies."""
        if player_id not in self.players:
            return Outcome.reject(RejectReason.UNKNOWN_PLAYER, None)
        if self.phase != "build":
            return Outcome.reject(RejectReason.WRONG_PHASE, player_id, detail="Not in build phase")
        for p in self.players.values():
            p.ready = True
        out = Outcome(accepted=True, player_id=player_id)
        self._try_start_battle(out)
        return out

    def on_build_timeout(self) -> Outcome:
        if self.phase != "build":
            return Outcome(accepted=False, reason=RejectReason.WRONG_PHASE)
        out = Outcome(accepted=True)
        # a player who readied without a launcher still gets the default one
        for p in self.players.values():
            if not p.launchers(alive_only=True):
                self._place_default_launcher(p, out)
            p.ready = True
        out.events.append(Outbound(self._room_update()))
        self._try_start_battle(out)
        return out

    # --- battle phase ---
    def request_shot(self, player_id: str, launcher_id: str, path: Sequence[Tile]) -> Outcome:
        player = self.players.get(player_id)
        if player is None:
            return Outcome.reject(RejectReason.UNKNOWN_PLAYER, None, shot=True)
        if self.phase != "battle":
            return self._reject_shot(RejectReason.WRONG_PHASE, player_id, launcher_id, "Not in battle phase")
        if not self.scheduler.is_turn_of(player_id):
            return self._reject_shot(RejectReason.NOT_YOUR_TURN, player_id, launcher_id)
        launcher = player.find_unit(launcher_id)
        if launcher is None or launcher.kind != "launcher":
            return self._reject_shot(RejectReason.LAUNCHER_NOT_FOUND, player_id, launcher_id)
        if launcher.destroyed:
            return self._reject_shot(RejectReason.LAUNCHER_DESTROYED, player_id, launcher_id)
        reason = self.ledger.check_shot(player, launcher)
        if reason:
            return self._reject_shot(reason, player_id, launcher_id)
        path = list(path)
        reason = validate_path(path, launcher.range, self.ruleset.grid_size)
        if reason:
            return self._reject_shot(reason, player_id, launcher_id)

        opponent = self.players[opponent_of(player_id)]
        interception = resolve_interception(path, opponent.defenses(alive_only=True), self.rng)
        damage = None
        cells: list[Tile] = []
        if not interception.intercepted:
            damage, cells = resolve_area_damage(path[-1], launcher.aoe, opponent.units, self.ruleset.grid_size)
        mana = self.ledger.debit_shot(player, launcher)

        _dbg(f"[{self.match_id}] {player_id} fired {launcher_id} len={len(path)} intercepted={interception.intercepted}")
        match_write(self.match_id, {
            "type": "shot",
            "turn": self.scheduler.turn_number,
            "player": player_id,
            "launcher": launcher_id,
            "path": [[t.x, t.y] for t in path],
            "intercepted": interception.intercepted,
            "defense": interception.defense_id,
            "destroyed": ([d.id for d in damage.launchers] + [d.id for d in damage.defenses]) if damage else [],
            "mana": mana,
        })
        out = Outcome(accepted=True, player_id=player_id)
        out.events.append(Outbound(ApplyDamage(
            attacker_id=player_id,
            launcher_id=launcher_id,
            path_tiles=path,
            damage=damage,
            target_cells=cells,
            intercepted=interception.intercepted,
            interception_defense=interception.defense_id,
            intercepted_at=interception.tile,
        )))
        out.events.append(Outbound(ManaUpdate(player_id=player_id, mana=mana)))

        winner = evaluate_winner(self.players)
        if winner:
            self._finish(out, winner)
        elif self.ledger.turn_exhausted(player):
            self._switch_turn(out)
        else:
            # the turn timer counts from the last action
            out.timers.append(self.scheduler.arm_turn_timer())
        return out

    def end_turn(self, player_id: str) -> Outcome:
        if player_id not in self.players:
            return Outcome.reject(RejectReason.UNKNOWN_PLAYER, None)
        if self.phase != "battle":
            return Outcome.reject(RejectReason.WRONG_PHASE, player_id, detail="Not in battle phase")
        if not self.scheduler.is_turn_of(player_id):
            return Outcome.reject(RejectReason.NOT_YOUR_TURN, player_id)
        out = Outcome(accepted=True, player_id=player_id)
        self._switch_turn(out)
        return out

    def on_turn_timeout(self) -> Outcome:
        if self.phase != "battle" or self.current_turn is None:
            return Outcome(accepted=False, reason=RejectReason.WRONG_PHASE)
        _dbg(f"[{self.match_id}] turn timer expired for {self.current_turn}")
        out = Outcome(accepted=True, player_id=self.current_turn)
        self._switch_turn(out)
        return out

    def summary(self, created_at: int = 0) -> MatchListItem:
        players = sum(1 for p in self.players.values() if p.connected)
        return MatchListItem(
            match_id=self.match_id,
            phase=self.phase,
            players=players,
            has_open_slot=len(self.players) < len(PLAYER_SLOTS) and self.phase != "gameOver",
            created_at=created_at,
        )

    # --- transitions ---
    def _start_build(self, out: Outcome) -> None:
        self.phase = "build"
        _dbg(f"[{self.match_id}] build phase started")
        for pid, p in self.players.items():
            out.events.append(Outbound(self._build_state(p), to=pid))
        out.timers.append(TimerCommand("build", float(self.ruleset.build_duration)))

    def _try_start_battle(self, out: Outcome) -> bool:
        missing = [pid for pid, p in self.players.items() if not p.launchers(alive_only=True)]
        if len(self.players) < len(PLAYER_SLOTS) or missing:
            # roll back: stay in build, clear ready flags, re-send build state and re-arm the timer
            self.phase = "build"
            for p in self.players.values():
                p.ready = False
            out.accepted = False
            out.reason = RejectReason.NO_LAUNCHERS
            out.detail = RejectReason.NO_LAUNCHERS.message
            _dbg(f"[{self.match_id}] battle start rejected, no launchers: {missing}")
            match_write(self.match_id, {"type": "battle_start_rejected", "missing": missing})
            out.events.append(Outbound(ErrorMessage(message=out.detail, code=RejectReason.NO_LAUNCHERS)))
            out.events.append(Outbound(self._room_update()))
            for pid, p in self.players.items():
                out.events.append(Outbound(self._build_state(p), to=pid))
            out.timers.append(TimerCommand("build", float(self.ruleset.build_duration)))
            return False

        self.phase = "battle"
        out.timers.extend(self.scheduler.start(self.players))
        _dbg(f"[{self.match_id}] battle phase started, turn: {self.current_turn}")
        match_write(self.match_id, {
            "type": "battle_start",
            "turn": self.current_turn,
            "mana": self._mana_table(),
        })
        for pid, p in self.players.items():
            out.events.append(Outbound(BattleState(
                current_turn=self.current_turn,
                mana=self._mana_table(),
                units=list(p.units),
            ), to=pid))
        return True

    def _switch_turn(self, out: Outcome) -> None:
        out.timers.extend(self.scheduler.switch_turn(self.players))
        _dbg(f"[{self.match_id}] turn switched to: {self.current_turn}")
        match_write(self.match_id, {
            "type": "turn_change",
            "turn": self.scheduler.turn_number,
            "current": self.current_turn,
            "mana": self._mana_table(),
        })
        out.events.append(Outbound(TurnChange(current_turn=self.current_turn, mana=self._mana_table())))

    def _finish(self, out: Outcome, winner: str, reason: str = "launchers") -> None:
        self.phase = "gameOver"
        self.winner = winner
        out.timers.extend(self.scheduler.stop())
        _dbg(f"[{self.match_id}] game over! winner: {winner} ({reason})")
        match_write(self.match_id, {"type": "game_over", "winner": winner, "reason": reason,
                                    "turn": self.scheduler.turn_number})
        out.events.append(Outbound(GameOver(winner=winner)))

    def _reject_shot(self, reason: RejectReason, player_id: str, launcher_id: str, detail: str = "") -> Outcome:
        out = Outcome.reject(reason, player_id, shot=True, detail=detail)
        match_write(self.match_id, {"type": "shot_rejected", "player": player_id, "launcher": launcher_id, "reason": reason.value})
        return out

    # --- helpers ---
    def _place_default_launcher(self, player: PlayerState, out: Outcome) -> bool:
        placed = self.ledger.placed_cost(player.units)
        occupied = {c for u in player.units for c in u.footprint()}
        for t in sorted(self.ruleset.launchers, key=lambda lt: lt.cost):
            if self.ledger.check_placement(player, placed + t.cost):
                continue
            pos = self._first_free(t.size, occupied)
            if pos is None:
                continue
            unit = self._make_unit(player.player_id, pos[0], pos[1], t)
            self.ledger.apply_placement(player, [*player.units, unit], placed + t.cost)
            _dbg(f"[{self.match_id}] default {t.id} placed for {player.player_id} at {pos}")
            match_write(self.match_id, {"type": "units_placed", "player": player.player_id, "default": True,
                                        "units": [{"id": unit.id, "kind": unit.kind, "type": unit.type_id, "pos": list(pos)}],
                                        "budget_remaining": player.budget_remaining})
            out.events.append(Outbound(self._build_state(player), to=player.player_id))
            return True
        return False

    def _first_free(self, size: tuple[int, int], occupied: set[tuple[int, int]]) -> Optional[tuple[int, int]]:
        n = self.ruleset.grid_size
        for y in range(n - size[1] + 1):
            for x in range(n - size[0] + 1):
                if not occupied.intersection(self._footprint(x, y, size)):
                    return (x, y)
        return None

    @staticmethod
    def _footprint(x: int, y: int, size: tuple[int, int]) -> list[tuple[int, int]]:
        return [(x + dx, y + dy) for dy in range(size[1]) for dx in range(size[0])]

    def _make_unit(self, owner: str, x: int, y: int, t: "LauncherType|DefenseType") -> Unit:
        if isinstance(t, LauncherType):
            return LauncherUnit(id=self.ids.next_id("launcher"), type_id=t.id, owner=owner, x=x, y=y,
                                size=t.size, range=t.range, aoe=t.aoe, mana_cost=t.mana_cost)
        return DefenseUnit(id=self.ids.next_id("defense"), type_id=t.id, owner=owner, x=x, y=y,
                           size=t.size, coverage=t.coverage, intercept_chance=t.intercept_chance)

    def _mana_table(self) -> dict[str, int]:
        return {pid: p.mana for pid, p in self.players.items()}

    def _room_update(self, player_id: Optional[str] = None) -> RoomUpdate:
        return RoomUpdate(
            room_id=self.match_id,
            player_id=player_id,
            players=sum(1 for p in self.players.values() if p.connected),
            ready_players=[pid for pid, p in self.players.items() if p.ready],
        )

    def _build_state(self, player: PlayerState) -> BuildPhaseState:
        return BuildPhaseState(
            player_id=player.player_id,
            budget=player.budget_remaining,
            build_budget=self.ruleset.budget,
            grid_size=self.ruleset.grid_size,
            units=list(player.units),
        )


Listener = Callable[[str, list[Outbound]], None]


@dataclass
class Match:
    session: MatchSession
    created_at: int = field(default_factory=lambda: int(time.time()))
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class MatchStore:
    """Registry of live matches, owned by the transport layer.

    Every intent and every timer expiry for a match runs through ``dispatch`` under that
    match's lock, so a match only ever sees one mutation at a time.
    """

    def __init__(self, ruleset: Ruleset, *,
                 timers: Optional[TimerService] = None,
                 room_ids: Optional[Callable[[], str]] = None,
                 rng_factory: Optional[Callable[[], RandomSource]] = None,
                 listener: Optional[Listener] = None) -> None:
        self.ruleset = ruleset
        self.timers = timers if timers is not None else TimerService()
        self._room_ids = room_ids or RoomIdGenerator()
        self._rng_factory = rng_factory or random.Random
        self.listener = listener
        self._matches: Dict[str, Match] = {}
        self._lock = threading.Lock()

    # --- lifecycle ---
    def create(self) -> str:
        with self._lock:
            mid = self._room_ids()
            while mid in self._matches:
                mid = self._room_ids()
            self._matches[mid] = Match(session=MatchSession(mid, self.ruleset, rng=self._rng_factory()))
        _dbg(f"[{mid}] room created")
        match_write(mid, {"type": "match_created", "grid_size": self.ruleset.grid_size, "budget": self.ruleset.budget})
        return mid

    def lookup(self, match_id: str) -> MatchSession:
        return self._matches[match_id].session

    def dispose(self, match_id: str) -> bool:
        with self._lock:
            m = self._matches.pop(match_id, None)
        self.timers.forget(match_id)
        audit.forget(match_id)
        if m is not None:
            _dbg(f"[{match_id}] room disposed")
        return m is not None

    def list_matches(self) -> MatchListResponse:
        with self._lock:
            items = [m.session.summary(m.created_at) for m in self._matches.values()]
        return MatchListResponse(matches=items)

    # --- intents ---
    def dispatch(self, match_id: str, fn: Callable[[MatchSession], Outcome]) -> Outcome:
        m = self._matches[match_id]
        with m.lock:
            out = fn(m.session)
            self._apply_timers(match_id, out.timers)
            self._publish(match_id, out.events)
        return out

    def join(self, match_id: str, on_assigned: Optional[Callable[[str], None]] = None) -> Outcome:
        """Take the next free slot. ``on_assigned`` runs before any event is published."""
        def _join(session: MatchSession) -> Outcome:
            out = session.add_player()
            if out.accepted and on_assigned is not None and out.player_id:
                on_assigned(out.player_id)
            return out
        return self.dispatch(match_id, _join)

    def place_units(self, match_id: str, player_id: str, units: Iterable[ProposedUnit]) -> Outcome:
        return self.dispatch(match_id, lambda s: s.place_units(player_id, units))

    def set_ready(self, match_id: str, player_id: str) -> Outcome:
        return self.dispatch(match_id, lambda s: s.set_ready(player_id))

    def force_start_battle(self, match_id: str, player_id: str) -> Outcome:
        return self.dispatch(match_id, lambda s: s.force_start_battle(player_id))

    def request_shot(self, match_id: str, player_id: str, launcher_id: str, path: Sequence[Tile]) -> Outcome:
        return self.dispatch(match_id, lambda s: s.request_shot(player_id, launcher_id, path))

    def end_turn(self, match_id: str, player_id: str) -> Outcome:
        return self.dispatch(match_id, lambda s: s.end_turn(player_id))

    def leave(self, match_id: str, player_id: str) -> Optional[Outcome]:
        m = self._matches.get(match_id)
        if m is None:
            return None
        with m.lock:
            out = m.session.disconnect(player_id)
            gone = m.session.all_disconnected()
            if not gone:
                self._apply_timers(match_id, out.timers)
                self._publish(match_id, out.events)
        if gone:
            self.dispose(match_id)
        return out

    # --- timers ---
    def _apply_timers(self, match_id: str, commands: list[TimerCommand]) -> None:
        for cmd in commands:
            if cmd.delay is None:
                self.timers.cancel(match_id, cmd.kind)
            else:
                self.timers.arm(match_id, cmd.kind, cmd.delay, partial(self._on_timer, match_id, cmd.kind))

    def _on_timer(self, match_id: str, kind: TimerKind, generation: int) -> None:
        m = self._matches.get(match_id)
        if m is None:
            return
        with m.lock:
            if not self.timers.is_current(match_id, kind, generation):
                _dbg(f"[{match_id}] stale {kind} timer ignored (gen={generation})")
                return
            match_write(match_id, {"type": "timer_fire", "kind": kind, "phase": m.session.phase})
            if kind == "build":
                out = m.session.on_build_timeout()
            else:
                out = m.session.on_turn_timeout()
            self._apply_timers(match_id, out.timers)
            self._publish(match_id, out.events)

    def _publish(self, match_id: str, events: list[Outbound]) -> None:
        if not events or self.listener is None:
            return
        try:
            self.listener(match_id, events)
        except Exception as e:
            _dbg(f"[{match_id}] event delivery failed: {e}")
