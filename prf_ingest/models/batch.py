from __future__ import annotations

from enum import Enum

"""Batch state enum.

State transitions for one uploaded workbook:

    received -> parsed -> grouped -> validated -> (validate-only stops here)
             -> imported -> reported

A reader / sheet resolution failure short-circuits to rejected_at_parse.
"""

__all__ = [
    "BatchState",
]


class BatchState(Enum):
    RECEIVED = "received"
    PARSED = "parsed"
    GROUPED = "grouped"
    VALIDATED = "validated"
    IMPORTED = "imported"
    REPORTED = "reported"
    REJECTED_AT_PARSE = "rejected_at_parse"

    @property
    def terminal(self) -> bool:
        return self in (BatchState.REPORTED, BatchState.REJECTED_AT_PARSE)
