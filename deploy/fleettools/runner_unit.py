""" A single runner slot in the fleet. """

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from typing import Iterator, TYPE_CHECKING
if TYPE_CHECKING:
    from fleettools.fleet_config import FleetConfig


@dataclass(frozen=True)
class RunnerUnit:
    """One runner agent instance, identified only by its ordinal.

    Attributes:
        index: 1-based ordinal of the unit in the fleet.
        name: Runner name registered with GitHub (prefix + index).
        workdir: Directory the agent is extracted into (base_dir/name).
    """
    index: int
    name: str
    workdir: Path

    @classmethod
    def for_index(cls, config: FleetConfig, index: int) -> RunnerUnit:
        assert 1 <= index <= config.num_runners, f"Unit index {index} outside of [1, {config.num_runners}]"
        name = f"{config.runner_name_prefix}{index}"
        return cls(index, name, config.base_dir / name)

    def __str__(self) -> str:
        return f"{self.name} ({self.workdir})"


def fleet_units(config: FleetConfig) -> Iterator[RunnerUnit]:
    """Yield every unit of the fleet in ordinal order, 1..num_runners."""
    for index in range(1, config.num_runners + 1):
        yield RunnerUnit.for_index(config, index)
