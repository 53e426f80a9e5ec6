from gridstrike.schemas import LauncherUnit, PLAYER_ONE, PlayerState, RejectReason
from gridstrike.services.ledger import ResourceLedger
from rulesets import small_ruleset


def _player(ruleset, **kw):
    data = dict(player_id=PLAYER_ONE, budget_remaining=ruleset.budget, mana=ruleset.mana.start_mana)
    data.update(kw)
    return PlayerState(**data)


def _std(uid="launcher_1", x=0, y=0):
    return LauncherUnit(id=uid, type_id="std", owner=PLAYER_ONE, x=x, y=y, range=5, aoe=(3, 3), mana_cost=2)


def test_placement_is_charged_as_a_delta():
    rs = small_ruleset()
    ledger = ResourceLedger(rs)
    p = _player(rs)
    assert ledger.check_placement(p, 5) is None
    assert ledger.apply_placement(p, [_std()], 5) == 5
    # swapping the same launcher to a new cell refunds the old one
    assert ledger.check_placement(p, 5) is None
    assert ledger.apply_placement(p, [_std("launcher_2", 3, 3)], 5) == 5
    assert ledger.spent(p) == 5


def test_placement_over_budget_is_rejected():
    rs = small_ruleset()
    ledger = ResourceLedger(rs)
    p = _player(rs)
    ledger.apply_placement(p, [_std()], 5)
    assert ledger.check_placement(p, 11) == RejectReason.INSUFFICIENT_BUDGET
    assert ledger.check_placement(p, 10) is None
    assert p.budget_remaining == 5


def test_empty_placement_refunds_everything():
    rs = small_ruleset()
    ledger = ResourceLedger(rs)
    p = _player(rs)
    ledger.apply_placement(p, [_std()], 5)
    assert ledger.apply_placement(p, [], 0) == rs.budget


def test_shot_checks():
    rs = small_ruleset(maxShotsPerTurn=2, maxShotsPerLauncherPerTurn=1)
    ledger = ResourceLedger(rs)
    launcher = _std()
    p = _player(rs, mana=1)
    assert ledger.check_shot(p, launcher) == RejectReason.INSUFFICIENT_MANA
    p.mana = 10
    assert ledger.check_shot(p, launcher) is None
    ledger.debit_shot(p, launcher)
    assert ledger.check_shot(p, launcher) == RejectReason.MAX_SHOTS_PER_LAUNCHER
    assert ledger.check_shot(p, _std("launcher_9")) is None
    ledger.debit_shot(p, _std("launcher_9"))
    assert ledger.check_shot(p, _std("launcher_10")) == RejectReason.MAX_SHOTS_PER_TURN
    assert ledger.turn_exhausted(p)


def test_debit_floors_at_zero():
    rs = small_ruleset()
    ledger = ResourceLedger(rs)
    p = _player(rs, mana=1)
    assert ledger.debit_shot(p, _std()) == 0
    assert p.shots_this_turn == 1
    assert p.shots_by_launcher == {"launcher_1": 1}


def test_regenerate_clamps_to_max():
    rs = small_ruleset(manaPerTurn=4, maxMana=12)
    ledger = ResourceLedger(rs)
    p = _player(rs, mana=10)
    assert ledger.regenerate(p) == 12
    assert ledger.regenerate(p) == 12
    ledger.reset_shots(p)
    assert p.shots_this_turn == 0 and p.shots_by_launcher == {}
