"""Snapshot based undo/redo stack for form schemas."""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass
from typing import Iterator, List, Optional

from form_engine.models import FormSchema
from form_engine.schema_defaults import DEFAULT_HISTORY_LIMIT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistorySnapshot:
    """An immutable copy of a schema and its position in the stack."""

    index: int
    schema: FormSchema


class HistoryManager:
    """Bounded stack of deep-copied schemas with a movable cursor.

    ``save`` discards any redo branch beyond the cursor before appending, and
    the oldest snapshots are dropped once ``limit`` is exceeded. Every schema
    entering or leaving the stack is deep-copied so the live document and the
    stored snapshots never share mutable state.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("History limit must be at least 1.")
        self.limit = limit
        self._stack: List[FormSchema] = []
        self._index = -1

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def index(self) -> int:
        return self._index

    def reset(self, schema: FormSchema) -> None:
        """Start a fresh history containing only ``schema``."""

        self._stack = [deepcopy(schema)]
        self._index = 0

    def save(self, schema: FormSchema) -> None:
        del self._stack[self._index + 1 :]
        self._stack.append(deepcopy(schema))
        if len(self._stack) > self.limit:
            dropped = len(self._stack) - self.limit
            del self._stack[:dropped]
            logger.debug("History limit %s reached, dropped %s snapshot(s)", self.limit, dropped)
        self._index = len(self._stack) - 1

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return 0 <= self._index < len(self._stack) - 1

    def undo(self) -> Optional[FormSchema]:
        """Step back and return a copy of the restored schema, or ``None``."""

        if not self.can_undo():
            return None
        self._index -= 1
        return deepcopy(self._stack[self._index])

    def redo(self) -> Optional[FormSchema]:
        """Step forward and return a copy of the restored schema, or ``None``."""

        if not self.can_redo():
            return None
        self._index += 1
        return deepcopy(self._stack[self._index])

    def current(self) -> Optional[HistorySnapshot]:
        if self._index < 0:
            return None
        return HistorySnapshot(index=self._index, schema=deepcopy(self._stack[self._index]))

    def snapshots(self) -> Iterator[HistorySnapshot]:
        for index, schema in enumerate(self._stack):
            yield HistorySnapshot(index=index, schema=deepcopy(schema))
