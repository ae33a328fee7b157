"""
Sequence allocator — human-readable per-tenant numbers.

Generates:
  - Projects:           PR{seq:03d}/{year}   (e.g. PR001/2025, PR042/2026)
  - Pipeline projects:  PL{seq:03d}/{year}   (e.g. PL007/2025)
  - Clients:            CL{seq:04d}          (e.g. CL0007)
  - Team members:       EMP{seq:03d}         (e.g. EMP003)
  - Stock items:        STK{seq:05d}         (e.g. STK00012)

The next number is derived from the most recently created row of the same
tenant and kind: parse the digits after the prefix, add one; start at 1
when nothing parses. The year is a suffix only, so the counter keeps
running across years. Archived projects count as issued numbers.

Allocation is read-then-write with no store-level counter, so two
concurrent callers can compute the same number. The (tenant_id, number)
unique constraints catch that; insert_with_number() re-reads and retries up
to SEQUENCE_MAX_ATTEMPTS times and then raises ExhaustedRetriesError.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable

from joinery.core.exceptions import DuplicateKeyError, ExhaustedRetriesError, ValidationError
from joinery.models.archive import ArchivedProject
from joinery.models.directory import Client, StockItem, TeamMember
from joinery.models.project import PipelineProject, Project

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

# How many recent rows to look through for a parseable number.
_SCAN_WINDOW = 50


def year_suffix(today: date) -> str:
    return f"/{today.year}"


@dataclass(frozen=True)
class SequenceKind:
    name: str
    prefix: str
    pad_width: int
    column: str
    sources: tuple
    suffix_fn: Callable[[date], str] | None = None

    @property
    def pattern(self):
        return re.compile(rf"^{re.escape(self.prefix)}(\d+)")

    def format(self, n: int, today: date) -> str:
        suffix = self.suffix_fn(today) if self.suffix_fn else ""
        return f"{self.prefix}{n:0{self.pad_width}d}{suffix}"


SEQUENCES = {
    "project": SequenceKind(
        "project", "PR", 3, "project_number", (Project, ArchivedProject), year_suffix,
    ),
    "pipeline-project": SequenceKind(
        "pipeline-project", "PL", 3, "project_number", (PipelineProject,), year_suffix,
    ),
    "client": SequenceKind("client", "CL", 4, "client_number", (Client,)),
    "employee": SequenceKind("employee", "EMP", 3, "employee_number", (TeamMember,)),
    "stock-item": SequenceKind("stock-item", "STK", 5, "item_number", (StockItem,)),
}


class SequenceAllocator:
    """Per-tenant, per-kind number generator with collision retry."""

    def __init__(self, store, max_attempts=DEFAULT_MAX_ATTEMPTS, today=date.today):
        self.store = store
        self.max_attempts = max_attempts
        self.today = today

    @staticmethod
    def kind(name) -> SequenceKind:
        if isinstance(name, SequenceKind):
            return name
        try:
            return SEQUENCES[name]
        except KeyError:
            raise ValidationError(
                f"Unknown sequence kind '{name}'", details={"supported": list(SEQUENCES)},
            ) from None

    def last_issued(self, tenant_id: int, kind) -> int:
        """Highest counter among the most recent row of each source table (0 if none)."""
        kind = self.kind(kind)
        best = 0
        for model in kind.sources:
            rows = self.store.select(
                model,
                [model.tenant_id == tenant_id],
                order_by=[model.created_at.desc(), model.id.desc()],
                limit=_SCAN_WINDOW,
            )
            for row in rows:
                match = kind.pattern.match(row.get(kind.column) or "")
                if match:
                    best = max(best, int(match.group(1)))
                    break
        return best

    def next(self, tenant_id: int, kind, floor: int = 0) -> str:
        """Return the next identifier. ``floor`` forces n > floor (used on retry)."""
        kind = self.kind(kind)
        n = max(self.last_issued(tenant_id, kind), floor) + 1
        return kind.format(n, self.today())

    def insert_with_number(self, tenant_id: int, kind, insert_fn):
        """Allocate a number and call ``insert_fn(number)`` until it sticks.

        Only a collision on the number column is retried; any other error,
        including other unique violations, propagates unchanged.
        """
        kind = self.kind(kind)
        floor = 0
        for attempt in range(1, self.max_attempts + 1):
            number = self.next(tenant_id, kind, floor)
            try:
                return insert_fn(number)
            except DuplicateKeyError as exc:
                if exc.columns and kind.column not in exc.columns:
                    raise
                floor = int(kind.pattern.match(number).group(1))
                logger.warning(
                    "Sequence collision on %s %s (attempt %d/%d)",
                    kind.name, number, attempt, self.max_attempts,
                    extra={"tenant_id": tenant_id, "event_type": "sequence_collision"},
                )
        raise ExhaustedRetriesError(kind.name, self.max_attempts)
