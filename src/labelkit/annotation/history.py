# src/labelkit/annotation/history.py

import logging
from collections import deque
from typing import Deque, List, Optional, Sequence

from .model import Annotation, snapshot

logger = logging.getLogger(__name__)

MAX_HISTORY = 50

Snapshot = List[Annotation]


class UndoHistory:
    """
    Bounded undo/redo stacks over whole-collection snapshots.

    Every stored entry is a private deep copy and is handed out as a fresh
    copy again, so later edits of the live collection never reach into
    the history.
    """

    def __init__(self, max_depth: int = MAX_HISTORY):
        self.max_depth = max_depth
        self._undo: Deque[Snapshot] = deque(maxlen=max_depth)
        self._redo: Deque[Snapshot] = deque(maxlen=max_depth)

    def push(self, annotations: Sequence[Annotation]) -> None:
        """Record the pre-mutation collection; invalidates any redo lineage."""
        self._undo.append(snapshot(annotations))
        self._redo.clear()

    def undo(self, current: Sequence[Annotation]) -> Optional[Snapshot]:
        if not self._undo:
            return None
        previous = self._undo.pop()
        self._redo.append(snapshot(current))
        logger.debug(f"Undo: {len(self._undo)} undo / {len(self._redo)} redo entries left")
        return snapshot(previous)

    def redo(self, current: Sequence[Annotation]) -> Optional[Snapshot]:
        if not self._redo:
            return None
        following = self._redo.pop()
        self._undo.append(snapshot(current))
        logger.debug(f"Redo: {len(self._undo)} undo / {len(self._redo)} redo entries left")
        return snapshot(following)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def __len__(self) -> int:
        return len(self._undo)
