from pathlib import Path
import sys
from typing import Optional

from fastapi import FastAPI
import uvicorn

# Resolve project root (two levels up from this file: gridstrike/main.py -> project root)
PROJECT_ROOT = Path(__file__).resolve().parent.parent
# Ensure project root on sys.path so `import gridstrike.*` works when running as a script
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gridstrike.config import VERSION, Settings, load_ruleset
from gridstrike.routers.match_router import router as match_router
from gridstrike.schemas import Ruleset
from gridstrike.services.hub import ConnectionHub
from gridstrike.services.match import MatchStore
from gridstrike.services.timers import ManualTimers, TimerService


def create_app(settings: Optional[Settings] = None, *, ruleset: Optional[Ruleset] = None,
               store: Optional[MatchStore] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    ruleset = ruleset or load_ruleset(settings.ruleset_path)
    hub = ConnectionHub()
    if store is None:
        timers = TimerService() if settings.timers_enabled else ManualTimers()
        store = MatchStore(ruleset, timers=timers)
    store.listener = hub.publish

    app = FastAPI(title="gridstrike", version=VERSION)
    app.state.settings = settings
    app.state.ruleset = store.ruleset
    app.state.store = store
    app.state.hub = hub

    # Health check
    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/version")
    def version():
        return {"version": VERSION}

    # Active ruleset in the client's config.json shape
    @app.get("/config.json")
    def config_json():
        return app.state.ruleset.model_dump(mode="json", by_alias=True)

    app.include_router(match_router, prefix="/v1/match", tags=["match"])
    return app


if __name__ == "__main__":
    _settings = Settings.from_env()
    uvicorn.run(create_app(_settings), host=_settings.host, port=_settings.port)
