import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from gridstrike.schemas import Ruleset

VERSION = "0.3.0"

# Built-in catalog, same shape as the ruleset JSON file.
DEFAULT_RULESET: dict[str, Any] = {
    "gridSize": 10,
    "budget": 20,
    "mana": {
        "startMana": 10,
        "manaPerTurn": 3,
        "maxMana": 20,
        "maxShotsPerTurn": 1,
        "maxShotsPerLauncherPerTurn": 1,
    },
    "launchers": [
        {"id": "light", "name": "Light launcher", "cost": 4, "size": [1, 1], "range": 6, "aoe": [1, 1], "manaCost": 2},
        {"id": "medium", "name": "Medium launcher", "cost": 6, "size": [1, 2], "range": 8, "aoe": [3, 1], "manaCost": 4},
        {"id": "heavy", "name": "Heavy launcher", "cost": 9, "size": [2, 2], "range": 10, "aoe": [3, 3], "manaCost": 7},
    ],
    "defenses": [
        {"id": "flak", "name": "Flak", "cost": 3, "size": [1, 1], "coverage": 2, "interceptChance": 0.3},
        {"id": "shield", "name": "Shield", "cost": 6, "size": [2, 1], "coverage": 3, "interceptChance": 0.5},
    ],
    "turnDuration": 30,
    "buildDuration": 30,
}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class Settings:
    ruleset_path: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8000
    timers_enabled: bool = True
    debug: bool = False

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            ruleset_path=os.getenv("GRIDSTRIKE_RULESET") or None,
            host=os.getenv("GRIDSTRIKE_HOST", "0.0.0.0"),
            port=int(os.getenv("GRIDSTRIKE_PORT", "8000")),
            timers_enabled=_env_flag("GRIDSTRIKE_TIMERS", True),
            debug=_env_flag("GRIDSTRIKE_DEBUG", False),
        )


def load_ruleset(path: "str|Path|None" = None) -> Ruleset:
    """Load and validate a ruleset JSON file; without a path the built-in catalog is used.

    Raises ValueError (pydantic ValidationError) when the catalog is inconsistent.
    """
    if path is None:
        return Ruleset.model_validate(DEFAULT_RULESET)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return Ruleset.model_validate(data)
