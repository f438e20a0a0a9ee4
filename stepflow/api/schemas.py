from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

RoleName = Literal["buyer", "seller", "agent"]

OperationName = Literal[
    "register",
    "send_verification_code",
    "verify_code",
    "pay",
    "assign_agent",
    "get_assigned_agent",
    "list_directory",
]

class StartWorkflowRequest(BaseModel):
    role: RoleName
    # Agent flows are bound to the agent working them
    agentId: Optional[str] = None

class EditRequest(BaseModel):
    fields: Dict[str, Any] = Field(default_factory=dict)

class OperationRequest(BaseModel):
    contact: Optional[str] = None
    code: Optional[str] = None
    amountCents: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    agentId: Optional[str] = None
    propertyId: Optional[str] = None
    filters: Optional[Dict[str, Any]] = None
    page: int = 1
    limit: Optional[int] = None

class PhaseView(BaseModel):
    id: int
    key: str
    title: str
    status: str

class WorkflowSnapshot(BaseModel):
    instanceId: str
    role: RoleName
    currentPhase: int
    maxPhase: int
    phases: List[PhaseView]
    sessionData: Dict[str, Any]
    complete: bool
    nextOpenPhase: Optional[int] = None
    history: List[Dict[str, Any]] = Field(default_factory=list)
    operations: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

class NavigationResponse(BaseModel):
    moved: bool
    workflow: WorkflowSnapshot

class OperationResponse(BaseModel):
    operation: OperationName
    status: Literal["succeeded", "failed"]
    sequence: int
    reason: Optional[str] = None
    error: Optional[str] = None
    result: Any = None
    workflow: WorkflowSnapshot
