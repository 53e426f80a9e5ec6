import random

import pytest

from gridstrike.schemas import PLAYER_ONE, PLAYER_TWO, PlayerState
from gridstrike.services.ledger import ResourceLedger
from gridstrike.services.turn import TurnScheduler
from rulesets import small_ruleset


def _setup(**mana):
    rs = small_ruleset(**mana)
    ledger = ResourceLedger(rs)
    players = {pid: PlayerState(player_id=pid, budget_remaining=rs.budget, mana=rs.mana.start_mana)
               for pid in (PLAYER_ONE, PLAYER_TWO)}
    return rs, TurnScheduler(rs, ledger), players


def test_opening_turn_gets_first_regeneration():
    rs, sched, players = _setup()
    timers = sched.start(players)
    assert sched.current_turn == PLAYER_ONE
    assert players[PLAYER_ONE].mana == 13
    assert players[PLAYER_TWO].mana == 10
    assert [(t.kind, t.delay) for t in timers] == [("build", None), ("turn", 20.0)]


def test_opening_regeneration_is_clamped():
    _, sched, players = _setup(startMana=10, manaPerTurn=5, maxMana=12)
    sched.start(players)
    assert players[PLAYER_ONE].mana == 12


def test_switch_resets_counters_and_regenerates_next_player():
    rs, sched, players = _setup()
    sched.start(players)
    players[PLAYER_ONE].shots_this_turn = 1
    players[PLAYER_ONE].shots_by_launcher = {"launcher_1": 1}
    players[PLAYER_TWO].shots_this_turn = 1
    timers = sched.switch_turn(players)
    assert sched.current_turn == PLAYER_TWO
    assert sched.turn_number == 2
    assert players[PLAYER_TWO].mana == 13
    assert players[PLAYER_ONE].mana == 13
    assert all(p.shots_this_turn == 0 and p.shots_by_launcher == {} for p in players.values())
    assert timers[0].kind == "turn" and timers[0].delay == 20.0


def test_switch_before_battle_raises():
    _, sched, players = _setup()
    with pytest.raises(RuntimeError):
        sched.switch_turn(players)


def test_mana_stays_in_range_over_many_switches():
    rs, sched, players = _setup(startMana=0, manaPerTurn=7, maxMana=15)
    sched.start(players)
    rng = random.Random(3)
    for _ in range(200):
        before = {pid: p.mana for pid, p in players.items()}
        # occasionally spend something, as a fired shot would
        if rng.random() < 0.3:
            p = players[sched.current_turn]
            p.mana = max(0, p.mana - rng.randint(1, 5))
            before[sched.current_turn] = p.mana
        sched.switch_turn(players)
        for pid, p in players.items():
            assert 0 <= p.mana <= rs.mana.max_mana
            assert p.mana >= before[pid]
