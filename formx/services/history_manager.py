"""
History Manager

Bounded undo/redo over tree snapshots.

State is {past, present, future}: past is oldest-first and capped at the
configured limit, future is newest-first. Every snapshot is a deep copy, so
later edits of the live tree cannot leak into history.
"""

import logging
from collections.abc import Callable

from formx.config import get_settings
from formx.models.contracts.components import ComponentTree

logger = logging.getLogger(__name__)

RestoreCallback = Callable[[ComponentTree], None]


def snapshot_of(components: ComponentTree) -> ComponentTree:
    """Deep copy of a tree."""
    return [component.model_copy(deep=True) for component in components]


def snapshots_equal(a: ComponentTree, b: ComponentTree) -> bool:
    """Structural equality of two trees."""
    return len(a) == len(b) and all(x == y for x, y in zip(a, b))


class HistoryManager:
    """
    Undo/redo stack of tree snapshots.

    Usage:
        history = HistoryManager()
        history.push(store.snapshot())
        history.undo(lambda tree: store.set_components(tree))
    """

    def __init__(self, limit: int | None = None):
        self.limit = limit if limit is not None else get_settings().history_limit
        self.past: list[ComponentTree] = []
        self.present: ComponentTree = []
        self.future: list[ComponentTree] = []

    @property
    def can_undo(self) -> bool:
        return bool(self.past)

    @property
    def can_redo(self) -> bool:
        return bool(self.future)

    def push(self, snapshot: ComponentTree) -> None:
        """Record a new present; the previous present moves onto past."""
        self.past.append(self.present)
        if len(self.past) > self.limit:
            dropped = len(self.past) - self.limit
            del self.past[:dropped]
            logger.debug(f"History limit {self.limit} reached, dropped {dropped} oldest snapshot(s)")
        self.present = snapshot_of(snapshot)
        self.future = []

    def undo(self, callback: RestoreCallback | None = None) -> ComponentTree | None:
        """
        Step back one snapshot.

        Returns the restored snapshot (also passed to callback), or None when
        there is nothing to undo.
        """
        if not self.past:
            return None
        previous = self.past.pop()
        self.future.insert(0, self.present)
        self.present = previous
        restored = snapshot_of(previous)
        if callback is not None:
            callback(restored)
        return restored

    def redo(self, callback: RestoreCallback | None = None) -> ComponentTree | None:
        """Mirror of undo()."""
        if not self.future:
            return None
        following = self.future.pop(0)
        self.past.append(self.present)
        self.present = following
        restored = snapshot_of(following)
        if callback is not None:
            callback(restored)
        return restored

    def clear(self) -> None:
        self.past = []
        self.present = []
        self.future = []
        logger.info("History cleared")

    def reset(self, snapshot: ComponentTree) -> None:
        """Clear history and start from snapshot as the present."""
        self.past = []
        self.present = snapshot_of(snapshot)
        self.future = []

