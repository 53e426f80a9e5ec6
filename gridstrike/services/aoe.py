from typing import Iterable

from gridstrike.schemas import DamageReport, DestroyedUnit, Tile, Unit


def aoe_cells(cx: int, cy: int, width: int, height: int, grid_size: int) -> list[Tile]:
    """Cells of the blast rectangle centred on (cx, cy), clipped to the grid.

    Half extents use floor division, so an even extent reaches one cell further than its width.
    """
    half_w = width // 2
    half_h = height // 2
    cells: list[Tile] = []
    for dy in range(-half_h, half_h + 1):
        for dx in range(-half_w, half_w + 1):
            x, y = cx + dx, cy + dy
            if 0 <= x < grid_size and 0 <= y < grid_size:
                cells.append(Tile(x=x, y=y))
    return cells


def resolve_area_damage(impact: Tile, aoe: tuple[int, int], units: Iterable[Unit], grid_size: int) -> tuple[DamageReport, list[Tile]]:
    """Destroy every live unit whose footprint touches the blast.

    Units are flagged ``destroyed`` in place and reported once; already destroyed units are skipped,
    so resolving the same impact twice reports nothing new.
    """
    cells = aoe_cells(impact.x, impact.y, aoe[0], aoe[1], grid_size)
    report = DamageReport()
    units = list(units)
    for cell in cells:
        for unit in units:
            if unit.destroyed or not unit.occupies(cell.x, cell.y):
                continue
            unit.destroyed = True
            hit = DestroyedUnit(id=unit.id, x=unit.x, y=unit.y)
            if unit.kind == "launcher":
                report.launchers.append(hit)
            else:
                report.defenses.append(hit)
    return report, cells
