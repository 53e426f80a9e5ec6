import json
import os

import pytest

from gridstrike.config import DEFAULT_RULESET, Settings, load_ruleset
from gridstrike.schemas import ProposedUnit, ShotRequest
from gridstrike.utils import audit
from gridstrike.utils.audit import match_write
from rulesets import ruleset_dict


def test_default_ruleset_loads():
    rs = load_ruleset()
    assert rs.grid_size == DEFAULT_RULESET["gridSize"]
    assert {t.id for t in rs.launchers} == {"light", "medium", "heavy"}
    assert rs.unit_type("defense", "flak").intercept_chance == 0.3
    assert rs.unit_type("launcher", "flak") is None


def test_ruleset_from_file(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps(ruleset_dict(startMana=4)), encoding="utf-8")
    rs = load_ruleset(path)
    assert rs.mana.start_mana == 4
    assert rs.unit_type("launcher", "big").size == (2, 2)
    # config.json round trip keeps the client's camelCase keys
    dumped = rs.model_dump(mode="json", by_alias=True)
    assert dumped["mana"]["maxShotsPerLauncherPerTurn"] == 1
    assert dumped["launchers"][0]["manaCost"] == 2


def _broken_duplicate(d):
    d["defenses"][0]["id"] = "std"


def _broken_chance(d):
    d["defenses"][0]["interceptChance"] = 1.5


def _broken_start_mana(d):
    d["mana"]["startMana"] = 30


def _broken_size(d):
    d["launchers"][0]["size"] = [0, 1]


@pytest.mark.parametrize("breaker", [_broken_duplicate, _broken_chance, _broken_start_mana, _broken_size])
def test_inconsistent_ruleset_is_rejected(tmp_path, breaker):
    d = ruleset_dict()
    breaker(d)
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(d), encoding="utf-8")
    with pytest.raises(ValueError):
        load_ruleset(path)


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("GRIDSTRIKE_PORT", "9100")
    monkeypatch.setenv("GRIDSTRIKE_TIMERS", "off")
    monkeypatch.delenv("GRIDSTRIKE_RULESET", raising=False)
    s = Settings.from_env()
    assert s.port == 9100
    assert s.timers_enabled is False
    assert s.ruleset_path is None


def test_legacy_unit_shape():
    u = ProposedUnit.model_validate({"type": "launcher", "launcherType": "std", "x": 1, "y": 2})
    assert (u.kind, u.type_id, u.x, u.y) == ("launcher", "std", 1, 2)
    d = ProposedUnit.model_validate({"type": "defense", "defenseType": "flak", "x": 0, "y": 0})
    assert d.type_id == "flak"
    assert ProposedUnit.model_validate({"kind": "defense", "typeId": "wall", "x": 3, "y": 3}).type_id == "wall"


def test_shot_request_reads_path_tiles():
    req = ShotRequest.model_validate({"launcherId": "launcher_1",
                                      "pathTiles": [{"x": 0, "y": 0, "grid": "opponent"}, {"x": 1, "y": 1}]})
    assert req.launcher_id == "launcher_1"
    assert [(t.x, t.y) for t in req.path] == [(0, 0), (1, 1)]


def test_match_write_appends_json_lines():
    match_write("AUDIT1", {"type": "shot", "player": "player1"})
    match_write("AUDIT1", {"type": "game_over", "winner": "player1"})
    log_dir = os.environ["GRIDSTRIKE_LOG_DIR"]
    files = [f for f in os.listdir(log_dir) if f.endswith("_AUDIT1.log")]
    assert len(files) == 1
    with open(os.path.join(log_dir, files[0]), encoding="utf-8") as f:
        records = [json.loads(line) for line in f]
    assert [r["type"] for r in records] == ["shot", "game_over"]
    assert all(r["match_id"] == "AUDIT1" for r in records)
    audit.forget("AUDIT1")


def test_match_write_can_be_disabled(monkeypatch):
    monkeypatch.setenv("GRIDSTRIKE_AUDIT", "0")
    match_write("AUDIT2", {"type": "shot"})
    assert not os.path.exists(os.environ["GRIDSTRIKE_LOG_DIR"])
