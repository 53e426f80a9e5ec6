from typing import Mapping, Optional

from gridstrike.schemas import PLAYER_SLOTS, PlayerState


def evaluate_winner(players: Mapping[str, PlayerState]) -> Optional[str]:
    """Return the winner once a player has no launcher left, else None.

    Players are scanned in slot order and the first one without launchers loses.
    Defenses do not count.
    """
    for pid in PLAYER_SLOTS:
        player = players.get(pid)
        if player is None:
            continue
        if not player.launchers(alive_only=True):
            return opponent_of(pid)
    return None


def opponent_of(player_id: str) -> str:
    return PLAYER_SLOTS[1] if player_id == PLAYER_SLOTS[0] else PLAYER_SLOTS[0]
