import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from stepflow.core import gates
from stepflow.core.phases import Role, RoleConfig, get_role_config
from stepflow.observability.logging import log
from stepflow.store.models import PhaseTransition
from stepflow.store.session_store import SessionStore
from stepflow.utils.time import now_ms


class WorkflowInstance:
    """
    Complete single-session state of one role's run through its phases.

    Owned by whichever boundary started the flow and handed explicitly to the
    navigation controller and the operation adapter. `currentPhase` and
    `phaseHistory` change only through NavigationController.
    """

    def __init__(self, role, *, instance_id: Optional[str] = None, store: Optional[SessionStore] = None):
        self.role = Role(role)
        self.config: RoleConfig = get_role_config(self.role)
        self.instanceId = instance_id or uuid.uuid4().hex
        self.store = store or SessionStore(self.config)
        self._current_phase = 1
        self._history: List[PhaseTransition] = []
        self.createdAtMs = now_ms()

    @property
    def currentPhase(self) -> int:
        return self._current_phase

    @property
    def maxPhase(self) -> int:
        return self.config.max_phase

    @property
    def sessionData(self) -> Mapping[str, Any]:
        return self.store.view()

    @property
    def phaseHistory(self) -> Tuple[PhaseTransition, ...]:
        return tuple(self._history)

    @property
    def is_complete(self) -> bool:
        return self._current_phase == self.maxPhase and gates.is_complete(self.config, self.store.data)

    def phase_status(self, phase: int) -> str:
        return gates.phase_status(self.config, self.store.data, phase, self._current_phase)

    def gate_report(self) -> gates.GateReport:
        return gates.evaluate(self.config, self.store.data, self._current_phase)

    def edit(self, **changes) -> List[str]:
        """User input collected by the current phase view."""
        return self.store.edit(changes, current_phase=self._current_phase)

    def _move_to(self, phase: int, action: str) -> PhaseTransition:
        entry = PhaseTransition(
            sequence=len(self._history) + 1,
            fromPhase=self._current_phase,
            toPhase=phase,
            action=action,
            atMs=now_ms(),
        )
        self._history.append(entry)
        self._current_phase = phase
        return entry


def create_workflow(role, **seed) -> WorkflowInstance:
    """
    Start a fresh instance at phase 1 with all flags false.
    `seed` may only carry fields fixed at creation (e.g. the agent's id).
    """
    instance = WorkflowInstance(role)
    if seed:
        instance.store.apply(**seed)
    log(event="workflow_created", instanceId=instance.instanceId, role=instance.role.value, seeded=sorted(seed))
    return instance


def snapshot(instance: WorkflowInstance) -> Dict[str, Any]:
    """Presentation-facing view: phases with status, data without credentials."""
    report = instance.gate_report()
    data = dict(instance.sessionData)
    for name in instance.config.transient_fields:
        data.pop(name, None)
    return {
        "instanceId": instance.instanceId,
        "role": instance.role.value,
        "currentPhase": instance.currentPhase,
        "maxPhase": instance.maxPhase,
        "phases": [
            {"id": p.id, "key": p.key, "title": p.title, "status": report.statuses[p.id]}
            for p in instance.config.phases
        ],
        "sessionData": data,
        "complete": instance.is_complete,
        "nextOpenPhase": report.next_open,
        "history": [
            {"sequence": h.sequence, "fromPhase": h.fromPhase, "toPhase": h.toPhase, "action": h.action, "atMs": h.atMs}
            for h in instance.phaseHistory
        ],
    }
