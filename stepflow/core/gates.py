"""
Phase Gate Engine
-----------------
Pure functions over (RoleConfig, session data, current phase). Nothing here
mutates state; callers re-evaluate after every data change.

A phase is *reachable* when every gate up to and including its own holds
(monotonic prerequisite chain). A phase is *satisfied* when the next phase's
gate holds, or, for the last phase, the role's completion predicate.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from stepflow.core.phases import (
    ACTIVE,
    COMPLETED,
    LOCKED,
    UNLOCKED_INCOMPLETE,
    RoleConfig,
)


def _in_range(config: RoleConfig, phase: int) -> bool:
    return isinstance(phase, int) and 1 <= phase <= config.max_phase


def gate_open(config: RoleConfig, data, phase: int) -> bool:
    return bool(config.phases[phase - 1].gate(data))


def is_reachable(config: RoleConfig, data, phase: int) -> bool:
    if not _in_range(config, phase):
        return False
    return all(gate_open(config, data, p) for p in range(1, phase + 1))


def is_satisfied(config: RoleConfig, data, phase: int) -> bool:
    if not is_reachable(config, data, phase):
        return False
    if phase == config.max_phase:
        return bool(config.completion(data))
    return gate_open(config, data, phase + 1)


def phase_status(config: RoleConfig, data, phase: int, current_phase: int) -> str:
    if not is_reachable(config, data, phase):
        return LOCKED
    if phase == current_phase:
        return ACTIVE
    if is_satisfied(config, data, phase):
        return COMPLETED
    return UNLOCKED_INCOMPLETE


def accessible_phases(config: RoleConfig, data) -> Tuple[int, ...]:
    out = []
    for p in range(1, config.max_phase + 1):
        if not gate_open(config, data, p):
            break
        out.append(p)
    return tuple(out)


def next_open_phase(config: RoleConfig, data) -> Optional[int]:
    """Lowest reachable phase that is not yet satisfied (None when the flow is complete)."""
    for p in accessible_phases(config, data):
        if not is_satisfied(config, data, p):
            return p
    return None


def is_complete(config: RoleConfig, data) -> bool:
    return is_satisfied(config, data, config.max_phase)


@dataclass(frozen=True)
class GateReport:
    statuses: Dict[int, str]
    accessible: Tuple[int, ...]
    next_open: Optional[int]
    complete: bool


def evaluate(config: RoleConfig, data, current_phase: int) -> GateReport:
    return GateReport(
        statuses={p: phase_status(config, data, p, current_phase) for p in range(1, config.max_phase + 1)},
        accessible=accessible_phases(config, data),
        next_open=next_open_phase(config, data),
        complete=is_complete(config, data),
    )
