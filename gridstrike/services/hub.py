import asyncio
import json
import threading
from typing import Dict, Optional, Tuple

from gridstrike.schemas import PLAYER_SLOTS, Message, Outbound
from gridstrike.services.match import _dbg


def encode(message: Message) -> str:
    return json.dumps(message.model_dump(mode="json", by_alias=True), ensure_ascii=False)


class ConnectionHub:
    """Maps (match id, player id) to a socket's send queue.

    ``publish`` may be called from any thread (timers fire on their own threads);
    delivery is handed to the owning event loop with ``call_soon_threadsafe``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._conns: Dict[Tuple[str, str], Tuple[asyncio.Queue[str], asyncio.AbstractEventLoop]] = {}

    def attach(self, match_id: str, player_id: str, q: "asyncio.Queue[str]", loop: asyncio.AbstractEventLoop) -> None:
        with self._lock:
            self._conns[(match_id, player_id)] = (q, loop)

    def detach(self, match_id: str, player_id: str) -> None:
        with self._lock:
            self._conns.pop((match_id, player_id), None)

    def publish(self, match_id: str, events: list[Outbound]) -> None:
        for ev in events:
            targets = [ev.to] if ev.to else list(PLAYER_SLOTS)
            data = encode(ev.message)
            for pid in targets:
                self._send(match_id, pid, data)

    def send_direct(self, q: "asyncio.Queue[str]", message: Message) -> None:
        """Reply on a socket that is not (yet) bound to a match slot."""
        try:
            q.put_nowait(encode(message))
        except asyncio.QueueFull:
            pass

    def _send(self, match_id: str, player_id: str, data: str) -> None:
        with self._lock:
            conn: Optional[Tuple[asyncio.Queue[str], asyncio.AbstractEventLoop]] = self._conns.get((match_id, player_id))
        if conn is None:
            return
        q, loop = conn
        try:
            loop.call_soon_threadsafe(self._deliver, match_id, player_id, q, data)
        except RuntimeError:
            # loop already closed: the socket is gone
            self.detach(match_id, player_id)

    def _deliver(self, match_id: str, player_id: str, q: "asyncio.Queue[str]", data: str) -> None:
        # runs on the socket's own loop
        try:
            q.put_nowait(data)
        except asyncio.QueueFull:
            _dbg(f"[{match_id}] send queue full for {player_id}, detaching")
            with self._lock:
                if self._conns.get((match_id, player_id), (None,))[0] is q:
                    del self._conns[(match_id, player_id)]
