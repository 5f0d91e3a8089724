from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from salonsync.domain import DayView, WorkerGroup


class ChangeKind(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


@dataclass(frozen=True)
class GroupChange:
    kind: ChangeKind
    key: str | None  # worker id, None for the unassigned group
    group: WorkerGroup | None  # new state; None when removed
    previous: WorkerGroup | None = None

    @property
    def waiting_changed(self) -> bool:
        before = self.previous.waiting_count if self.previous else 0
        after = self.group.waiting_count if self.group else 0
        return before != after


def diff_views(old: DayView, new: DayView) -> list[GroupChange]:
    """Changes needed to turn the rendered `old` view into `new`.

    Groups are matched by worker identity (the unassigned group by its
    sentinel), never by position. Identical groups produce nothing, so a
    refresh that brings back the same data yields an empty list.
    """
    changes: list[GroupChange] = []
    old_by_key = {g.key: g for g in old.groups}
    new_keys = set()

    for group in new.groups:
        new_keys.add(group.key)
        before = old_by_key.get(group.key)
        if before is None:
            changes.append(GroupChange(ChangeKind.ADDED, group.key, group))
        elif before != group:
            changes.append(GroupChange(ChangeKind.UPDATED, group.key, group, previous=before))

    for group in old.groups:
        if group.key not in new_keys:
            changes.append(GroupChange(ChangeKind.REMOVED, group.key, None, previous=group))

    return changes
