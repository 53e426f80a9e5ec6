from typing import Iterable, Optional

from gridstrike.schemas import LauncherUnit, PlayerState, RejectReason, Ruleset, Unit


class ResourceLedger:
    """Budget and mana bookkeeping for one match.

    Checks never mutate; the ``apply_*`` / ``debit_*`` methods are called only after every
    check for an intent has passed.
    """

    def __init__(self, ruleset: Ruleset):
        self.ruleset = ruleset

    # --- build budget ---
    def unit_cost(self, unit: Unit) -> int:
        t = self.ruleset.unit_type(unit.kind, unit.type_id)
        return t.cost if t is not None else 0

    def placed_cost(self, units: Iterable[Unit]) -> int:
        return sum(self.unit_cost(u) for u in units)

    def spent(self, player: PlayerState) -> int:
        return self.ruleset.budget - player.budget_remaining

    def check_placement(self, player: PlayerState, new_cost: int) -> Optional[RejectReason]:
        # replace-all: the units being replaced are refunded
        delta = new_cost - self.placed_cost(player.units)
        if delta > player.budget_remaining:
            return RejectReason.INSUFFICIENT_BUDGET
        return None

    def apply_placement(self, player: PlayerState, new_units: list[Unit], new_cost: int) -> int:
        delta = new_cost - self.placed_cost(player.units)
        player.units = new_units
        player.budget_remaining -= delta
        return player.budget_remaining

    # --- mana / shots ---
    def check_shot(self, player: PlayerState, launcher: LauncherUnit) -> Optional[RejectReason]:
        rules = self.ruleset.mana
        if player.mana < launcher.mana_cost:
            return RejectReason.INSUFFICIENT_MANA
        if player.shots_this_turn >= rules.max_shots_per_turn:
            return RejectReason.MAX_SHOTS_PER_TURN
        if player.shots_by_launcher.get(launcher.id, 0) >= rules.max_shots_per_launcher_per_turn:
            return RejectReason.MAX_SHOTS_PER_LAUNCHER
        return None

    def debit_shot(self, player: PlayerState, launcher: LauncherUnit) -> int:
        player.mana = max(0, player.mana - launcher.mana_cost)
        player.shots_this_turn += 1
        player.shots_by_launcher[launcher.id] = player.shots_by_launcher.get(launcher.id, 0) + 1
        return player.mana

    def regenerate(self, player: PlayerState) -> int:
        rules = self.ruleset.mana
        player.mana = min(player.mana + rules.mana_per_turn, rules.max_mana)
        return player.mana

    def reset_mana(self, player: PlayerState) -> None:
        player.mana = self.ruleset.mana.start_mana

    @staticmethod
    def reset_shots(player: PlayerState) -> None:
        player.shots_this_turn = 0
        player.shots_by_launcher = {}

    def turn_exhausted(self, player: PlayerState) -> bool:
        return player.shots_this_turn >= self.ruleset.mana.max_shots_per_turn
