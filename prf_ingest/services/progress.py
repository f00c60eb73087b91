from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

A single tqdm bar per import loop; in non-TTY environments (CI, piped output)
the bar is disabled so no control sequences end up in logs.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress bar over the records of one import loop."""

    def __init__(
        self, total: int, *, description: str = "Importing requests", unit: str = "request", enabled: bool = True
    ) -> None:
        self.total = total
        self.description = description
        self.current = 0

        self.enabled = enabled and is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=description,
                unit=unit,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self, label: str | None = None, **postfix: Any) -> None:
        """Mark one record done; ``label`` is shown next to the description."""
        self.current += 1
        if self.pbar is None:
            return
        if label:
            self.pbar.set_description(f"{self.description} ({label})")
        if postfix:
            self.pbar.set_postfix(**postfix)
        self.pbar.update(1)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.set_description(self.description)
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
