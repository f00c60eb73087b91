from __future__ import annotations

import logging
from dataclasses import dataclass

from ..db.store import RecordStore

"""Chart-of-accounts resolver.

Maps a cost code to a COA id, creating a placeholder account when the code
is unknown and auto-creation is enabled. One resolver lives for one batch;
results are memoised so a code is looked up (and created) at most once.

Placeholders are created in their own committed unit of work, so a later
rollback of the aggregate that first used the code never leaves the memo
pointing at a row that does not exist.
"""

__all__ = [
    "CoaResolution",
    "CoaResolver",
    "placeholder_name",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoaResolution:
    code: str
    coa_id: int | None
    created: bool = False
    found: bool = True


def placeholder_name(code: str) -> str:
    return f"{code} (auto-created)"


class CoaResolver:
    def __init__(self, store: RecordStore, auto_create: bool, default_category: str = "General") -> None:
        self.store = store
        self.auto_create = auto_create
        self.default_category = default_category
        self._memo: dict[str, CoaResolution] = {}
        self.created_codes: list[str] = []

    def resolve(self, code: str) -> CoaResolution:
        """Exact, case-sensitive lookup; StoreError from the placeholder insert propagates."""
        hit = self._memo.get(code)
        if hit is not None:
            return hit

        coa_id = self.store.find_coa_by_code(code)
        if coa_id is not None:
            res = CoaResolution(code=code, coa_id=coa_id)
        elif self.auto_create:
            with self.store.transaction():
                coa_id = self.store.create_coa(code, placeholder_name(code), self.default_category)
            self.created_codes.append(code)
            logger.info("created placeholder COA %s (id=%s)", code, coa_id)
            res = CoaResolution(code=code, coa_id=coa_id, created=True)
        else:
            res = CoaResolution(code=code, coa_id=None, found=False)

        self._memo[code] = res
        return res
