"""In-memory compensation log for a single multi-step request."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class UndoAction:
    label: str
    run: Callable[[], None]


@dataclass
class UndoLog:
    """Ordered undo actions, one per committed step.

    ``rollback`` runs them newest first. A failing undo is logged and the
    remaining ones still run; rollback never raises.
    """

    actions: list[UndoAction] = field(default_factory=list)

    def record(self, label: str, run: Callable[[], None]) -> None:
        self.actions.append(UndoAction(label, run))

    def __len__(self) -> int:
        return len(self.actions)

    def rollback(self) -> list[str]:
        """Undo everything recorded so far. Returns the labels that failed."""
        failed: list[str] = []
        while self.actions:
            action = self.actions.pop()
            try:
                action.run()
            except Exception:
                logger.warning("rollback step %s failed", action.label, exc_info=True)
                failed.append(action.label)
            else:
                logger.info("rolled back %s", action.label)
        return failed

    def discard(self) -> None:
        """Forget the recorded actions once the whole sequence has committed."""
        self.actions.clear()
