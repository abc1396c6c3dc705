"""Pending index operations."""

from pkb.sync.queue import IndexQueue, OpKind, QueueOp

__all__ = ["IndexQueue", "OpKind", "QueueOp"]
