"""
In-process collaborators used when USE_MOCKS is on (and in tests).

Behaves like the backend's mock mode: any registration is accepted, the
configured code verifies, payments succeed with pi_mock_* ids, and agent
assignments are kept per property.
"""
import asyncio
import math
import uuid
from typing import Any, Dict, List, Optional

from stepflow.adapters.gateway import (
    Assignment,
    DirectoryPage,
    PaymentConfirmation,
    PaymentIntent,
    RegistrationReceipt,
    VerificationRequest,
    VerificationResult,
)
from stepflow.core.errors import REASON_NOT_FOUND, REASON_VALIDATION, AsyncOperationError
from stepflow.settings import settings
from stepflow.utils.time import now_ms

DEFAULT_AGENTS = [
    {
        "id": "agent-1",
        "name": "Sarah Johnson",
        "title": "Senior Real Estate Agent",
        "office": "Austin Downtown",
        "specializations": ["Single Family Homes", "Luxury Properties", "First-time Buyers"],
        "languages": ["English", "Spanish"],
        "rating": 4.9,
    },
    {
        "id": "agent-2",
        "name": "Michael Chen",
        "title": "Luxury Property Specialist",
        "office": "Austin Central",
        "specializations": ["Luxury Properties", "Investment Properties", "International Buyers"],
        "languages": ["English", "Mandarin"],
        "rating": 4.8,
    },
    {
        "id": "agent-3",
        "name": "Emily Rodriguez",
        "title": "First-Time Buyer Specialist",
        "office": "Austin North",
        "specializations": ["First-time Buyers", "Condos", "Townhomes"],
        "languages": ["English", "Spanish"],
        "rating": 4.7,
    },
]

DEFAULT_PROPERTIES = [
    {"id": "prop-1", "title": "Beautiful Family Home", "address": "123 Maple Street, Austin, TX 78701",
     "price": 750000, "beds": 4, "baths": 3, "size": 2500, "propertyType": "Single Family"},
    {"id": "prop-2", "title": "Modern Downtown Condo", "address": "456 Main Street, Austin, TX 78702",
     "price": 650000, "beds": 3, "baths": 2, "size": 1800, "propertyType": "Condo"},
    {"id": "prop-3", "title": "Luxury Estate", "address": "789 Oak Avenue, Austin, TX 78703",
     "price": 1200000, "beds": 5, "baths": 4, "size": 4200, "propertyType": "Single Family"},
]

DEFAULT_ASSIGNMENTS = [
    {"id": "assignment-1", "agentId": "agent-1", "propertyId": "prop-1", "propertyTitle": "Beautiful Family Home",
     "propertyAddress": "123 Maple Street, Austin, TX 78701", "price": 750000, "status": "Active",
     "assignedDate": "2024-03-15", "priority": "high", "beds": 4, "baths": 3, "size": 2500},
    {"id": "assignment-2", "agentId": "agent-1", "propertyId": "prop-2", "propertyTitle": "Modern Downtown Condo",
     "propertyAddress": "456 Main Street, Austin, TX 78702", "price": 650000, "status": "Pending",
     "assignedDate": "2024-03-18", "priority": "medium", "beds": 3, "baths": 2, "size": 1800},
    {"id": "assignment-3", "agentId": "agent-2", "propertyId": "prop-3", "propertyTitle": "Luxury Estate",
     "propertyAddress": "789 Oak Avenue, Austin, TX 78703", "price": 1200000, "status": "Active",
     "assignedDate": "2024-03-20", "priority": "high", "beds": 5, "baths": 4, "size": 4200},
]


def _matches(item: Dict[str, Any], key: str, needle: Any) -> bool:
    """Case-insensitive substring match on strings, membership on lists, equality otherwise."""
    if key == "search":
        return any(_matches(item, k, needle) for k, v in item.items() if isinstance(v, (str, list)))
    value = item.get(key)
    if value is None:
        return False
    if isinstance(value, str):
        return str(needle).lower() in value.lower()
    if isinstance(value, list):
        return any(str(needle).lower() in str(v).lower() for v in value)
    return str(value) == str(needle)


def filter_items(items: List[Dict[str, Any]], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
    out = items
    for key, needle in filters.items():
        if needle is None or needle == "":
            continue
        out = [item for item in out if _matches(item, key, needle)]
    return out


def paginate(items: List[Dict[str, Any]], page: int, limit: int) -> DirectoryPage:
    start = (page - 1) * limit
    return DirectoryPage(
        items=[dict(i) for i in items[start:start + limit]],
        total=len(items),
        page=page,
        totalPages=math.ceil(len(items) / limit) if limit else 0,
    )


class InMemoryGateway:
    def __init__(
        self,
        agents: Optional[List[Dict[str, Any]]] = None,
        properties: Optional[List[Dict[str, Any]]] = None,
        assignments: Optional[List[Dict[str, Any]]] = None,
        otp_code: Optional[str] = None,
        latency_ms: Optional[int] = None,
    ):
        self.agents = [dict(a) for a in (agents if agents is not None else DEFAULT_AGENTS)]
        self.properties = [dict(p) for p in (properties if properties is not None else DEFAULT_PROPERTIES)]
        self.assignments = [dict(a) for a in (assignments if assignments is not None else DEFAULT_ASSIGNMENTS)]
        self.otp_code = otp_code or settings.MOCK_OTP_CODE
        self.latency_ms = settings.MOCK_LATENCY_MS if latency_ms is None else latency_ms

        self._verifications: Dict[str, str] = {}
        self._intents: Dict[str, Dict[str, Any]] = {}
        self._property_agents: Dict[str, Assignment] = {}
        self._last_assigned_ms = 0
        self.users: List[Dict[str, Any]] = []

    async def _delay(self) -> None:
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000.0)

    async def send_verification_code(self, contact: str) -> VerificationRequest:
        await self._delay()
        request_id = str(uuid.uuid4())
        self._verifications[request_id] = contact
        return VerificationRequest(requestId=request_id)

    async def verify_code(self, request_id: str, code: str) -> VerificationResult:
        await self._delay()
        if request_id not in self._verifications:
            raise AsyncOperationError(REASON_NOT_FOUND, "No pending verification for this request")
        return VerificationResult(verified=code == self.otp_code)

    async def register(self, role: str, profile: Dict[str, Any]) -> RegistrationReceipt:
        await self._delay()
        email = str(profile.get("email", "")).lower()
        if any(u["email"] == email and u["type"] == role for u in self.users):
            raise AsyncOperationError(REASON_VALIDATION, "An account with this email already exists")
        user_id = f"{role}-{uuid.uuid4().hex[:8]}"
        # Credentials are not retained
        self.users.append({"id": user_id, "email": email, "type": role, "name": profile.get("name", "")})
        return RegistrationReceipt(userId=user_id)

    async def create_payment_intent(self, amount_cents: int, metadata: Dict[str, Any]) -> PaymentIntent:
        await self._delay()
        if amount_cents < settings.MIN_PAYMENT_CENTS:
            raise AsyncOperationError(REASON_VALIDATION, "Invalid amount")
        intent_id = f"pi_mock_{uuid.uuid4().hex[:16]}"
        secret = f"{intent_id}_secret"
        self._intents[secret] = {"id": intent_id, "amount": amount_cents, "metadata": dict(metadata)}
        return PaymentIntent(clientSecret=secret, intentId=intent_id)

    async def confirm_payment(self, client_secret: str) -> PaymentConfirmation:
        await self._delay()
        intent = self._intents.get(client_secret)
        if intent is None:
            raise AsyncOperationError(REASON_NOT_FOUND, "Unknown payment intent")
        return PaymentConfirmation(paymentId=intent["id"], status="succeeded")

    async def assign_agent(self, property_id: str, agent_id: str) -> Assignment:
        await self._delay()
        agent = next((a for a in self.agents if a["id"] == agent_id), None)
        if agent is None:
            raise AsyncOperationError(REASON_NOT_FOUND, "Agent not found")
        # Strictly increasing, never earlier than the wall clock
        assigned_ms = max(now_ms(), self._last_assigned_ms + 1)
        self._last_assigned_ms = assigned_ms
        assignment = Assignment(
            propertyId=property_id,
            agentId=agent_id,
            assignedAgent=dict(agent),
            assignedAtMs=assigned_ms,
        )
        self._property_agents[property_id] = assignment
        return assignment

    async def get_assigned_agent(self, property_id: str) -> Optional[Assignment]:
        await self._delay()
        return self._property_agents.get(property_id)

    async def list_directory(self, role: str, filters: Dict[str, Any], page: int, limit: int) -> DirectoryPage:
        await self._delay()
        if role == "buyer":
            source = self.properties
        elif role == "seller":
            source = self.agents
        elif role == "agent":
            agent_id = filters.get("agentId")
            source = [a for a in self.assignments if a.get("agentId") == agent_id]
            filters = {k: v for k, v in filters.items() if k != "agentId"}
            # Newest assignment first
            source = sorted(source, key=lambda a: a.get("assignedDate", ""), reverse=True)
        else:
            raise AsyncOperationError(REASON_VALIDATION, f"No directory for role {role}")
        return paginate(filter_items(source, filters), page, limit)

    async def close(self) -> None:
        return None
