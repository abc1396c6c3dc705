"""Ordered, de-duplicating queue of pending index operations."""

import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OpKind(Enum):
    INDEX = "index"
    DELETE = "delete"


@dataclass(frozen=True)
class QueueOp:
    kind: OpKind
    filename: str


class IndexQueue:
    """FIFO of operations with at most one pending op per filename.

    Pushing a filename that is already queued moves it to the back and
    replaces its pending operation. Safe to share between threads.
    """

    def __init__(self):
        self._ops: "OrderedDict[str, QueueOp]" = OrderedDict()
        self._lock = threading.Lock()

    def push(self, op: QueueOp) -> None:
        with self._lock:
            self._ops.pop(op.filename, None)
            self._ops[op.filename] = op

    def pop(self) -> Optional[QueueOp]:
        """Remove and return the oldest operation, or None if empty."""
        with self._lock:
            if not self._ops:
                return None
            _, op = self._ops.popitem(last=False)
            return op

    def filenames(self) -> list[str]:
        with self._lock:
            return list(self._ops)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ops)

    def __contains__(self, filename: object) -> bool:
        with self._lock:
            return filename in self._ops
