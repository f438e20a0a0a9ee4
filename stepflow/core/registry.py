from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Optional

from stepflow.adapters.operation import OperationAdapter
from stepflow.core.navigation import NavigationController
from stepflow.core.workflow import WorkflowInstance, create_workflow
from stepflow.observability.logging import log
from stepflow.settings import settings


@dataclass
class WorkflowHandle:
    instance: WorkflowInstance
    navigation: NavigationController
    adapter: OperationAdapter


class WorkflowRegistry:
    """
    In-memory owner of active workflow instances, keyed by instanceId.
    Nothing is persisted: an instance is gone once discarded or evicted.
    """

    def __init__(self, gateway, max_active: Optional[int] = None):
        self.gateway = gateway
        self.max_active = max_active or settings.MAX_ACTIVE_WORKFLOWS
        self._handles: "OrderedDict[str, WorkflowHandle]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._handles)

    def start(self, role, **seed) -> WorkflowHandle:
        instance = create_workflow(role, **seed)
        handle = WorkflowHandle(
            instance=instance,
            navigation=NavigationController(instance),
            adapter=OperationAdapter(instance, self.gateway),
        )
        self._handles[instance.instanceId] = handle
        while len(self._handles) > self.max_active:
            evicted_id, _ = self._handles.popitem(last=False)
            log(event="workflow_discarded", instanceId=evicted_id, reason="evicted")
        return handle

    def get(self, instance_id: str) -> Optional[WorkflowHandle]:
        return self._handles.get(instance_id)

    def discard(self, instance_id: str, reason: str = "abandoned") -> bool:
        handle = self._handles.pop(instance_id, None)
        if handle is None:
            return False
        log(
            event="workflow_discarded",
            instanceId=instance_id,
            role=handle.instance.role.value,
            reason="completed" if handle.instance.is_complete else reason,
            currentPhase=handle.instance.currentPhase,
        )
        return True

    def snapshot_ids(self) -> Dict[str, str]:
        return {k: h.instance.role.value for k, h in self._handles.items()}
