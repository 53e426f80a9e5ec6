from typing import Mapping, Optional

from gridstrike.schemas import PLAYER_ONE, PlayerState, Ruleset, TimerCommand
from gridstrike.services.ledger import ResourceLedger
from gridstrike.services.win import opponent_of


class TurnScheduler:
    """Owns whose turn it is, the turn counter and the turn timer requests."""

    def __init__(self, ruleset: Ruleset, ledger: ResourceLedger, first_player: str = PLAYER_ONE):
        self.ruleset = ruleset
        self.ledger = ledger
        self.first_player = first_player
        self.current_turn: Optional[str] = None
        self.turn_number: int = 0

    def start(self, players: Mapping[str, PlayerState]) -> list[TimerCommand]:
        """Fix the opening turn. The opener already gets its first regeneration."""
        for player in players.values():
            self.ledger.reset_shots(player)
            self.ledger.reset_mana(player)
        self.current_turn = self.first_player
        self.turn_number = 1
        self.ledger.regenerate(players[self.first_player])
        return [TimerCommand("build", None), self.arm_turn_timer()]

    def switch_turn(self, players: Mapping[str, PlayerState]) -> list[TimerCommand]:
        if self.current_turn is None:
            raise RuntimeError("battle has not started")
        self.current_turn = opponent_of(self.current_turn)
        self.turn_number += 1
        for player in players.values():
            self.ledger.reset_shots(player)
        self.ledger.regenerate(players[self.current_turn])
        return [self.arm_turn_timer()]

    def arm_turn_timer(self) -> TimerCommand:
        return TimerCommand("turn", float(self.ruleset.turn_duration))

    def stop(self) -> list[TimerCommand]:
        return [TimerCommand("build", None), TimerCommand("turn", None)]

    def is_turn_of(self, player_id: str) -> bool:
        return self.current_turn == player_id
