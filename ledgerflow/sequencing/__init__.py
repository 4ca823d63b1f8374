"""Sequencing package."""

from ledgerflow.sequencing.allocator import (
    PartialReorderError,
    SequenceAllocator,
    display_order,
)

__all__ = ["PartialReorderError", "SequenceAllocator", "display_order"]
