from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder

from stepflow.adapters.actions import OPERATIONS
from stepflow.api.auth import require_api_key
from stepflow.api.deps import get_registry
from stepflow.api.schemas import (
    EditRequest,
    NavigationResponse,
    OperationName,
    OperationRequest,
    OperationResponse,
    StartWorkflowRequest,
    WorkflowSnapshot,
)
from stepflow.core.errors import ValidationError
from stepflow.core.phases import Role
from stepflow.core.registry import WorkflowHandle, WorkflowRegistry
from stepflow.core.workflow import snapshot

router = APIRouter(prefix="/workflows", dependencies=[Depends(require_api_key)])


def _handle(instance_id: str, registry: WorkflowRegistry) -> WorkflowHandle:
    handle = registry.get(instance_id)
    if handle is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return handle


def _view(handle: WorkflowHandle) -> Dict[str, Any]:
    out = snapshot(handle.instance)
    out["operations"] = handle.adapter.states()
    return jsonable_encoder(out)


def _operation_kwargs(name: str, req: OperationRequest) -> Dict[str, Any]:
    """Map the flat request body onto each operation's own parameters."""
    if name == "send_verification_code":
        return {"contact": req.contact}
    if name == "verify_code":
        return {"code": req.code}
    if name == "pay":
        return {"amount_cents": req.amountCents, "metadata": req.metadata}
    if name == "assign_agent":
        return {"agent_id": req.agentId, "property_id": req.propertyId}
    if name == "get_assigned_agent":
        return {"property_id": req.propertyId}
    if name == "list_directory":
        return {"filters": req.filters, "page": req.page, "limit": req.limit}
    return {}


@router.get("")
def list_workflows(registry: WorkflowRegistry = Depends(get_registry)):
    return {"count": len(registry), "workflows": registry.snapshot_ids()}


@router.post("", response_model=WorkflowSnapshot, status_code=201)
def start_workflow(req: StartWorkflowRequest, registry: WorkflowRegistry = Depends(get_registry)):
    seed = {}
    if req.role == Role.AGENT.value:
        if not req.agentId:
            raise ValidationError({"agentId": "Agent workflows require an agentId"})
        seed["agentId"] = req.agentId
    elif req.agentId:
        raise ValidationError({"agentId": f"not accepted for {req.role} workflows"})
    handle = registry.start(req.role, **seed)
    return _view(handle)


@router.get("/{instance_id}", response_model=WorkflowSnapshot)
def get_workflow(instance_id: str, registry: WorkflowRegistry = Depends(get_registry)):
    return _view(_handle(instance_id, registry))


@router.patch("/{instance_id}/data", response_model=WorkflowSnapshot)
def edit_workflow(instance_id: str, req: EditRequest, registry: WorkflowRegistry = Depends(get_registry)):
    handle = _handle(instance_id, registry)
    if req.fields:
        handle.instance.edit(**req.fields)
    return _view(handle)


@router.post("/{instance_id}/advance", response_model=NavigationResponse)
def advance(instance_id: str, registry: WorkflowRegistry = Depends(get_registry)):
    handle = _handle(instance_id, registry)
    moved = handle.navigation.advance()
    return {"moved": moved, "workflow": _view(handle)}


@router.post("/{instance_id}/retreat", response_model=NavigationResponse)
def retreat(instance_id: str, registry: WorkflowRegistry = Depends(get_registry)):
    handle = _handle(instance_id, registry)
    moved = handle.navigation.retreat()
    return {"moved": moved, "workflow": _view(handle)}


@router.post("/{instance_id}/goto/{phase}", response_model=NavigationResponse)
def goto(instance_id: str, phase: int, registry: WorkflowRegistry = Depends(get_registry)):
    handle = _handle(instance_id, registry)
    moved = handle.navigation.go_to(phase)
    return {"moved": moved, "workflow": _view(handle)}


@router.post("/{instance_id}/operations/{name}", response_model=OperationResponse)
async def run_operation(
    instance_id: str,
    name: OperationName,
    req: Optional[OperationRequest] = None,
    registry: WorkflowRegistry = Depends(get_registry),
):
    handle = _handle(instance_id, registry)
    operation = OPERATIONS[name]
    result = await operation(handle.adapter, **_operation_kwargs(name, req or OperationRequest()))
    # A failed call is a retryable state of the workflow, not a transport error
    return {
        "operation": name,
        "status": "succeeded" if result.ok else "failed",
        "sequence": result.sequence,
        "reason": result.reason,
        "error": str(result.error) if result.error is not None else None,
        "result": jsonable_encoder(result.value) if result.ok else None,
        "workflow": _view(handle),
    }


@router.delete("/{instance_id}")
def discard_workflow(instance_id: str, registry: WorkflowRegistry = Depends(get_registry)):
    if not registry.discard(instance_id):
        raise HTTPException(status_code=404, detail="Workflow not found")
    return {"status": "discarded", "instanceId": instance_id}
