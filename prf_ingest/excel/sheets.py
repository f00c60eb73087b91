from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .reader import ParseError

"""Sheet resolver.

Decides which sheet of the workbook holds purchase requests and which (if any)
holds budget allocations. Explicit names win when present; otherwise the
sheet names are matched case-insensitively against substring tokens.
"""

__all__ = [
    "SheetSelection",
    "SheetResolutionError",
    "resolve_sheets",
    "resolve_budget_sheet",
]

logger = logging.getLogger(__name__)


class SheetResolutionError(ParseError):
    """Raised when no request sheet can be chosen (e.g. the workbook has no sheets)."""


@dataclass(frozen=True)
class SheetSelection:
    request_sheet: str
    budget_sheet: str | None = None


def _match_token(names: Sequence[str], tokens: Sequence[str]) -> str | None:
    lowered = [t.lower() for t in tokens]
    for name in names:
        n = name.lower()
        if any(tok in n for tok in lowered):
            return name
    return None


def resolve_sheets(
    sheet_names: Sequence[str],
    request_sheet: str | None = None,
    budget_sheet: str | None = None,
    *,
    request_tokens: Sequence[str] = ("prf",),
    budget_tokens: Sequence[str] = ("budget",),
) -> SheetSelection:
    """Pick the request sheet and the optional budget sheet.

    - request: explicit name if present, else first name containing a request
      token, else the first sheet
    - budget: explicit name if present, else first *other* sheet containing a
      budget token, else None (budget handling is skipped)
    """
    names = list(sheet_names)
    if not names:
        raise SheetResolutionError("workbook contains no sheets")

    if request_sheet is not None and request_sheet not in names:
        logger.warning("request sheet %r not found, falling back to name matching", request_sheet)
        request_sheet = None
    if budget_sheet is not None and budget_sheet not in names:
        logger.warning("budget sheet %r not found, falling back to name matching", budget_sheet)
        budget_sheet = None

    chosen_request = request_sheet or _match_token(names, request_tokens) or names[0]

    chosen_budget = budget_sheet
    if chosen_budget is None:
        others = [n for n in names if n != chosen_request]
        chosen_budget = _match_token(others, budget_tokens)

    return SheetSelection(request_sheet=chosen_request, budget_sheet=chosen_budget)


def resolve_budget_sheet(
    sheet_names: Sequence[str], budget_sheet: str | None = None, *, budget_tokens: Sequence[str] = ("budget",)
) -> str | None:
    """Budget sheet for budget-only runs (no request sheet is excluded)."""
    names = list(sheet_names)
    if budget_sheet is not None:
        if budget_sheet in names:
            return budget_sheet
        logger.warning("budget sheet %r not found, falling back to name matching", budget_sheet)
    return _match_token(names, budget_tokens)
