from stepflow.core import gates
from stepflow.core.errors import GateViolation
from stepflow.core.phases import COMPLETED, LOCKED
from stepflow.core.workflow import WorkflowInstance
from stepflow.observability.logging import log


class NavigationController:
    """
    advance / retreat / go_to over a WorkflowInstance.

    Blocked navigation is an expected UI condition: every operation answers a
    bool and never raises. No network calls and no session-data writes here.
    """

    def __init__(self, instance: WorkflowInstance):
        self.instance = instance

    def _blocked(self, target: int, status: str, action: str) -> bool:
        violation = GateViolation(target, status)
        log(
            event="gate_violation",
            instanceId=self.instance.instanceId,
            role=self.instance.role.value,
            action=action,
            currentPhase=self.instance.currentPhase,
            targetPhase=target,
            reason=str(violation),
        )
        return False

    def advance(self) -> bool:
        inst = self.instance
        current = inst.currentPhase
        if current >= inst.maxPhase:
            return False
        target = current + 1
        # Reachability of the next phase implies every phase <= current is still satisfied
        status = inst.phase_status(target)
        if status == LOCKED:
            return self._blocked(target, status, "advance")
        inst._move_to(target, "advance")
        log(event="phase_advanced", instanceId=inst.instanceId, role=inst.role.value, fromPhase=current, toPhase=target)
        return True

    def retreat(self) -> bool:
        inst = self.instance
        current = inst.currentPhase
        if current <= 1:
            return False
        inst._move_to(current - 1, "retreat")
        log(event="phase_retreated", instanceId=inst.instanceId, role=inst.role.value, fromPhase=current, toPhase=current - 1)
        return True

    def go_to(self, phase: int) -> bool:
        """Revisit a completed phase, or jump to the next phase still waiting for input."""
        inst = self.instance
        if not isinstance(phase, int) or isinstance(phase, bool) or not 1 <= phase <= inst.maxPhase:
            return False
        if phase == inst.currentPhase:
            return False
        status = inst.phase_status(phase)
        allowed = status == COMPLETED or phase == gates.next_open_phase(inst.config, inst.store.data)
        if status == LOCKED or not allowed:
            return self._blocked(phase, status, "goto")
        current = inst.currentPhase
        inst._move_to(phase, "goto")
        log(event="phase_goto", instanceId=inst.instanceId, role=inst.role.value, fromPhase=current, toPhase=phase)
        return True
