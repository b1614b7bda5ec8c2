""" Per-unit outcomes of an init/destroy batch and their aggregate. """

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from typing import List, TYPE_CHECKING
if TYPE_CHECKING:
    from fleettools.runner_unit import RunnerUnit

rootLogger = logging.getLogger()

class UnitStatus(Enum):
    # init
    RUNNING = 'running'
    NOT_STARTED = 'not_started'
    FAILED = 'failed'
    # destroy
    REMOVED = 'removed'
    SKIPPED = 'skipped'
    INCOMPLETE = 'incomplete'

    def __str__(self):
        return self.value

    @property
    def succeeded(self) -> bool:
        return self not in (UnitStatus.FAILED, UnitStatus.INCOMPLETE)

@dataclass(frozen=True)
class UnitOutcome:
    unit: RunnerUnit
    status: UnitStatus
    detail: str = ""

@dataclass
class FleetSummary:
    """Result of folding the per-unit loop of one `init` or `destroy` run.

    Attributes:
        task: 'init' or 'destroy'.
        outcomes: One entry per attempted unit, in ordinal order.
    """
    task: str
    outcomes: List[UnitOutcome] = field(default_factory=list)

    def record(self, outcome: UnitOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def succeeded(self) -> List[UnitOutcome]:
        return [o for o in self.outcomes if o.status.succeeded]

    @property
    def failed(self) -> List[UnitOutcome]:
        return [o for o in self.outcomes if not o.status.succeeded]

    def with_status(self, status: UnitStatus) -> List[UnitOutcome]:
        return [o for o in self.outcomes if o.status == status]

    def log(self) -> None:
        rootLogger.info("-" * 80)
        rootLogger.info(f"{self.task} summary: {len(self.succeeded)}/{len(self.outcomes)} units succeeded, {len(self.failed)} failed")
        counts = [f"{status}: {len(self.with_status(status))}" for status in UnitStatus if self.with_status(status)]
        if counts:
            rootLogger.info(f"by status: {', '.join(counts)}")
        rootLogger.info("-" * 80)
        for outcome in self.outcomes:
            line = f"{outcome.unit.name:>20} | {outcome.status}"
            if outcome.detail:
                line += f" | {outcome.detail}"
            if outcome.status.succeeded:
                rootLogger.info(line)
            else:
                rootLogger.error(line)
        rootLogger.info("-" * 80)
