import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Maintain per-match filename base so all writes go to the same timestamped file
_MATCH_FILE_BASE: Dict[str, str] = {}


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _log_dir() -> str:
    configured = os.getenv("GRIDSTRIKE_LOG_DIR")
    if configured:
        return os.path.abspath(configured)
    # ../../logs/matches relative to this file
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "logs", "matches"))


def _file_base_for(match_id: str) -> str:
    """Return a stable '<timestamp>_<match_id>' base for this process."""
    if match_id in _MATCH_FILE_BASE:
        return _MATCH_FILE_BASE[match_id]
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    base = f"{ts}_{match_id}"
    _MATCH_FILE_BASE[match_id] = base
    return base


def audit_enabled() -> bool:
    return os.getenv("GRIDSTRIKE_AUDIT", "1") not in ("0", "false", "no")


def match_write(match_id: Optional[str], record: Dict[str, Any]) -> None:
    """Append a structured JSON line to the per-match audit log.

    The file is stored under logs/matches/<timestamp>_<match_id>.log (or GRIDSTRIKE_LOG_DIR).
    """
    if not match_id or not audit_enabled():
        return
    record = dict(record)
    record.setdefault("ts", datetime.now(timezone.utc).isoformat())
    record.setdefault("match_id", match_id)
    try:
        base_dir = _log_dir()
        _ensure_dir(base_dir)
        log_path = os.path.join(base_dir, f"{_file_base_for(match_id)}.log")
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
    except Exception:
        # Never raise from audit logging; it's best-effort.
        pass


def forget(match_id: str) -> None:
    _MATCH_FILE_BASE.pop(match_id, None)
