"""
Contracts of the external collaborators the workflow engine talks to.

Every method either returns within a bounded time or raises
AsyncOperationError with a typed reason (network, validation, not_found,
rate_limited).
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


@dataclass
class VerificationRequest:
    requestId: str


@dataclass
class VerificationResult:
    verified: bool


@dataclass
class RegistrationReceipt:
    userId: str


@dataclass
class PaymentIntent:
    clientSecret: str
    intentId: str = ""


@dataclass
class PaymentConfirmation:
    paymentId: str
    status: str  # succeeded / processing / requires_payment_method / canceled


@dataclass
class Assignment:
    propertyId: str
    agentId: str
    assignedAgent: Dict[str, Any] = field(default_factory=dict)
    assignedAtMs: int = 0
    status: str = "active"


@dataclass
class DirectoryPage:
    items: List[Dict[str, Any]]
    total: int
    page: int
    totalPages: int


class WorkflowGateway(Protocol):
    async def send_verification_code(self, contact: str) -> VerificationRequest: ...

    async def verify_code(self, request_id: str, code: str) -> VerificationResult: ...

    async def register(self, role: str, profile: Dict[str, Any]) -> RegistrationReceipt: ...

    async def create_payment_intent(self, amount_cents: int, metadata: Dict[str, Any]) -> PaymentIntent: ...

    async def confirm_payment(self, client_secret: str) -> PaymentConfirmation: ...

    async def assign_agent(self, property_id: str, agent_id: str) -> Assignment: ...

    async def get_assigned_agent(self, property_id: str) -> Optional[Assignment]: ...

    async def list_directory(
        self, role: str, filters: Dict[str, Any], page: int, limit: int
    ) -> DirectoryPage: ...

    async def close(self) -> None: ...
