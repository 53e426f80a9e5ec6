import asyncio
import json
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import TypeAdapter, ValidationError

from gridstrike.schemas import (
    ErrorMessage,
    MatchListItem,
    MatchListResponse,
    ProposedUnit,
    RejectReason,
    ShotRequest,
)
from gridstrike.services.hub import ConnectionHub
from gridstrike.services.match import MatchStore, _dbg

router = APIRouter()

_units_adapter = TypeAdapter(list[ProposedUnit])


class _Connection:
    """Per-socket state: which room and slot this socket speaks for."""

    def __init__(self, store: MatchStore, hub: ConnectionHub, q: "asyncio.Queue[str]", loop: asyncio.AbstractEventLoop):
        self.store = store
        self.hub = hub
        self.q = q
        self.loop = loop
        self.match_id: Optional[str] = None
        self.player_id: Optional[str] = None

    def error(self, message: str, code: Optional[RejectReason] = None) -> None:
        self.hub.send_direct(self.q, ErrorMessage(message=message, code=code))

    def bind(self, match_id: str):
        def _bind(player_id: str) -> None:
            self.match_id = match_id
            self.player_id = player_id
            self.hub.attach(match_id, player_id, self.q, self.loop)
        return _bind

    def handle(self, data: dict[str, Any]) -> None:
        kind = data.get("type")
        if kind == "createRoom":
            if self.match_id:
                return self.error("Already in a room")
            mid = self.store.create()
            self.store.join(mid, on_assigned=self.bind(mid))
            return
        if kind == "joinRoom":
            if self.match_id:
                return self.error("Already in a room")
            room_id = str(data.get("roomId") or "").upper()
            try:
                out = self.store.join(room_id, on_assigned=self.bind(room_id))
            except KeyError:
                return self.error("Room not found")
            if not out.accepted:
                self.error(out.detail, out.reason)
            return
        if kind not in ("placeUnits", "ready", "readyToStart", "requestShot", "endTurn"):
            return self.error("Unknown message type")
        if not self.match_id or not self.player_id:
            return self.error("Not in a room")
        mid, pid = self.match_id, self.player_id
        try:
            if kind == "placeUnits":
                units = _units_adapter.validate_python(data.get("units") or [])
                self.store.place_units(mid, pid, units)
            elif kind == "ready":
                self.store.set_ready(mid, pid)
            elif kind == "readyToStart":
                self.store.force_start_battle(mid, pid)
            elif kind == "requestShot":
                req = ShotRequest.model_validate(data)
                self.store.request_shot(mid, pid, req.launcher_id, req.path)
            elif kind == "endTurn":
                self.store.end_turn(mid, pid)
        except KeyError:
            # match already disposed
            _dbg(f"[{mid}] {kind} for unknown match ignored")

    def close(self) -> None:
        if self.match_id and self.player_id:
            self.hub.detach(self.match_id, self.player_id)
            self.store.leave(self.match_id, self.player_id)


async def _pump(ws: WebSocket, q: "asyncio.Queue[str]") -> None:
    while True:
        data = await q.get()
        await ws.send_text(data)


@router.websocket("/ws")
async def match_socket(ws: WebSocket) -> None:
    await ws.accept()
    q: asyncio.Queue[str] = asyncio.Queue(maxsize=100)
    conn = _Connection(ws.app.state.store, ws.app.state.hub, q, asyncio.get_running_loop())
    sender = asyncio.create_task(_pump(ws, q))
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
                if not isinstance(data, dict):
                    raise ValueError("message must be a JSON object")
                conn.handle(data)
            except (ValueError, ValidationError) as e:
                _dbg(f"bad message: {e}")
                conn.error("Invalid message format")
    except WebSocketDisconnect:
        pass
    finally:
        conn.close()
        sender.cancel()


@router.get("/", response_model=MatchListResponse)
def list_matches(request: Request) -> MatchListResponse:
    return request.app.state.store.list_matches()


@router.get("/{match_id}", response_model=MatchListItem)
def get_match(match_id: str, request: Request) -> MatchListItem:
    store: MatchStore = request.app.state.store
    try:
        session = store.lookup(match_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="match not found")
    return session.summary()
