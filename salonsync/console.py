from __future__ import annotations

import logging
from typing import Callable

from salonsync.domain import DayStatus, DayView, WorkerGroup
from salonsync.grid import DayCell, MonthGrid
from salonsync.merge import ChangeKind, GroupChange

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    DayStatus.CLOSED_EXCEPTION: "Fermeture Salon",
    DayStatus.CLOSED_REGULAR: "Fermé",
    DayStatus.ON_LEAVE: "Congés",
    DayStatus.WEEKLY_OFF: "Repos",
}

_WEEKDAYS = ("Lun", "Mar", "Mer", "Jeu", "Ven", "Sam", "Dim")


def format_cell(cell: DayCell) -> str:
    prefix = f"{cell.date.isoformat()} {_WEEKDAYS[cell.date.weekday()]}"
    if cell.is_today:
        prefix += " *"
    label = STATUS_LABELS.get(cell.status)
    if label:
        return f"{prefix}  [{label}]"
    if not cell.badges:
        return f"{prefix}  0 RDV"
    return f"{prefix}  " + ", ".join(f"{b.label}: {b.count}" for b in cell.badges)


def format_grid(grid: MonthGrid) -> str:
    lines = [f"=== {grid.year}-{grid.month:02d} ==="]
    lines.extend(format_cell(c) for c in grid.cells)
    return "\n".join(lines)


def format_group(group: WorkerGroup) -> str:
    header = f"-- {group.display_name} ({len(group.appointments)} RDV"
    if group.waiting_count:
        header += f", {group.waiting_count} en attente"
    header += ")"
    rows = [header]
    for appt in group.appointments:
        hold = " [HOLD]" if appt.is_hold else ""
        rows.append(f"   {appt.time}  {appt.client_name}  {appt.service}  {appt.phone or '-'}{hold}")
    return "\n".join(rows)


def format_day(view: DayView) -> str:
    title = f"Détails du {view.date.strftime('%d/%m/%Y')}"
    if view.is_empty:
        return f"{title}\nAucun rendez-vous ce jour-là."
    return "\n".join([title, *(format_group(g) for g in view.groups)])


class ConsoleSink:
    """Text rendering of the engine's output, for the CLI."""

    def __init__(self, write: Callable[[str], None] = print) -> None:
        self._write = write

    def render_grid(self, grid: MonthGrid) -> None:
        self._write(format_grid(grid))

    def render_detail(self, view: DayView) -> None:
        self._write(format_day(view))

    def patch_detail(self, view: DayView, changes: list[GroupChange]) -> None:
        for change in changes:
            if change.kind is ChangeKind.REMOVED:
                name = change.previous.display_name if change.previous else "?"
                self._write(f"[{view.date.isoformat()}] - {name}")
            elif change.group is not None:
                self._write(f"[{view.date.isoformat()}] {change.kind.value}:\n{format_group(change.group)}")

    def close_detail(self) -> None:
        logger.debug("Detail view closed")
