"""
Workflow operations: one coroutine per external call a phase view can trigger.

Each one validates local input (ValidationError, nothing sent), delegates the
call to OperationAdapter.invoke and, on success, writes only the session
fields that operation owns. None of them moves currentPhase.
"""
import re
from dataclasses import fields as dc_fields
from typing import Any, Dict, Optional

from stepflow.adapters.operation import OperationAdapter, OperationKind, OperationResult
from stepflow.core.errors import REASON_VALIDATION, AsyncOperationError, ValidationError
from stepflow.core.phases import Role
from stepflow.observability.logging import log
from stepflow.settings import settings
from stepflow.store.models import PropertySummary
from stepflow.utils.time import iso_from_ms

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\-\+\(\)]{10,}$")
MAX_PAGE_LIMIT = 100


def validate_password(password: str) -> Optional[str]:
    if len(password) < 8:
        return "Password must be at least 8 characters"
    if not re.search(r"[A-Z]", password):
        return "Password must contain an uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain a lowercase letter"
    if not re.search(r"\d", password):
        return "Password must contain a number"
    return None


def validate_registration(data) -> Dict[str, str]:
    errors: Dict[str, str] = {}

    name = data.name.strip()
    if not name:
        errors["name"] = "Name is required"
    elif len(name) < 2:
        errors["name"] = "Name must be at least 2 characters"

    if not data.email.strip():
        errors["email"] = "Email is required"
    elif not EMAIL_RE.match(data.email.strip()):
        errors["email"] = "Please enter a valid email address"

    if not data.phone.strip():
        errors["phone"] = "Phone number is required"
    elif not PHONE_RE.match(re.sub(r"\s", "", data.phone)):
        errors["phone"] = "Please enter a valid phone number"

    if not data.password:
        errors["password"] = "Password is required"
    else:
        msg = validate_password(data.password)
        if msg:
            errors["password"] = msg

    if not data.confirmPassword:
        errors["confirmPassword"] = "Please confirm your password"
    elif data.confirmPassword != data.password:
        errors["confirmPassword"] = "Passwords do not match"

    if not data.termsAccepted:
        errors["terms"] = "You must accept the terms and conditions"
    return errors


def _require_role(adapter: OperationAdapter, *roles: Role) -> None:
    role = adapter.instance.role
    if role not in roles:
        raise ValidationError({"role": f"operation not available for {role.value}"})


# ============================================================
# Registration & verification
# ============================================================

async def register(adapter: OperationAdapter) -> OperationResult:
    _require_role(adapter, Role.BUYER, Role.SELLER)
    inst = adapter.instance
    store = inst.store
    data = store.data

    errors = validate_registration(data)
    if errors:
        raise ValidationError(errors)

    profile = {
        "name": data.name.strip(),
        "email": data.email.strip(),
        "phone": data.phone.strip(),
        "password": data.password,
        "type": inst.role.value,
    }

    def _apply(_receipt):
        store.apply(registrationAccepted=True)

    def _settle():
        if store.clear_credentials():
            log(event="credentials_cleared", instanceId=inst.instanceId, role=inst.role.value)

    return await adapter.invoke(
        OperationKind.REGISTER,
        lambda: adapter.gateway.register(inst.role.value, profile),
        _apply,
        _settle,
    )


async def send_verification_code(adapter: OperationAdapter, contact: Optional[str] = None) -> OperationResult:
    _require_role(adapter, Role.BUYER, Role.SELLER)
    store = adapter.instance.store
    target = (contact or store.data.email or store.data.phone or "").strip()
    if not target:
        raise ValidationError({"contact": "An email or phone number is required"})

    def _apply(req):
        store.apply(otpRequestId=req.requestId)

    return await adapter.invoke(
        OperationKind.SEND_OTP,
        lambda: adapter.gateway.send_verification_code(target),
        _apply,
    )


async def verify_code(adapter: OperationAdapter, code: Optional[str] = None) -> OperationResult:
    _require_role(adapter, Role.BUYER, Role.SELLER)
    store = adapter.instance.store
    request_id = store.data.otpRequestId
    otp = (code if code is not None else store.data.otp).strip()
    if not request_id:
        raise ValidationError({"otp": "Request a verification code first"})
    if not otp:
        raise ValidationError({"otp": "Verification code is required"})

    async def _call():
        res = await adapter.gateway.verify_code(request_id, otp)
        if not res.verified:
            raise AsyncOperationError(REASON_VALIDATION, "Invalid verification code")
        return res

    def _apply(_res):
        store.apply(otpVerified=True)

    return await adapter.invoke(OperationKind.VERIFY_OTP, _call, _apply)


# ============================================================
# Payment
# ============================================================

async def pay(
    adapter: OperationAdapter,
    amount_cents: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> OperationResult:
    _require_role(adapter, Role.BUYER)
    inst = adapter.instance
    store = inst.store
    data = store.data

    if data.paymentCompleted:
        raise ValidationError({"payment": "Payment already completed"})
    if data.selectedProperty is None:
        raise ValidationError({"selectedProperty": "Select a property before paying"})
    if amount_cents is not None:
        amount = amount_cents
    else:
        amount = data.paymentAmountCents or settings.DEFAULT_PAYMENT_CENTS
    if not isinstance(amount, int) or amount < settings.MIN_PAYMENT_CENTS:
        raise ValidationError({"amount": f"Amount must be at least {settings.MIN_PAYMENT_CENTS} cents"})

    meta = {
        "propertyId": data.selectedProperty,
        "workflowId": inst.instanceId,
        "currency": settings.PAYMENT_CURRENCY,
        "service": "property-purchase",
    }
    meta.update(metadata or {})

    async def _call():
        intent = await adapter.gateway.create_payment_intent(amount, meta)
        confirmation = await adapter.gateway.confirm_payment(intent.clientSecret)
        if confirmation.status != "succeeded":
            raise AsyncOperationError(REASON_VALIDATION, f"Payment not completed (status={confirmation.status})")
        return confirmation

    def _apply(confirmation):
        store.apply(paymentCompleted=True, paymentId=confirmation.paymentId)

    return await adapter.invoke(OperationKind.PAYMENT, _call, _apply)


# ============================================================
# Agent assignment
# ============================================================

def _default_property(adapter: OperationAdapter) -> Optional[str]:
    data = adapter.instance.store.data
    if adapter.instance.role == Role.SELLER:
        return data.listingId
    return data.selectedProperty


async def assign_agent(
    adapter: OperationAdapter,
    agent_id: Optional[str] = None,
    property_id: Optional[str] = None,
) -> OperationResult:
    _require_role(adapter, Role.SELLER, Role.AGENT)
    inst = adapter.instance
    store = inst.store
    data = store.data

    prop = property_id or _default_property(adapter)
    agent = agent_id or (data.agentId if inst.role == Role.AGENT else None)
    errors = {}
    if not prop:
        errors["propertyId"] = "Property ID is required"
    if not agent:
        errors["agentId"] = "Agent ID is required"
    if errors:
        raise ValidationError(errors)

    def _apply(assignment):
        if inst.role == Role.SELLER:
            store.apply(assignedAgentId=assignment.agentId, assignedAt=assignment.assignedAtMs)
            return
        summary = next((p for p in data.assignedProperties if p.id == assignment.propertyId), None)
        store.apply(
            status="accepted",
            assignedDate=iso_from_ms(assignment.assignedAtMs),
            priority=summary.priority if summary else "",
        )

    return await adapter.invoke(
        OperationKind.ASSIGN_AGENT,
        lambda: adapter.gateway.assign_agent(prop, agent),
        _apply,
    )


async def get_assigned_agent(adapter: OperationAdapter, property_id: Optional[str] = None) -> OperationResult:
    """Read-only lookup; result value is the Assignment or None when nothing is assigned."""
    prop = property_id or _default_property(adapter)
    if not prop:
        raise ValidationError({"propertyId": "Property ID is required"})
    return await adapter.invoke(
        OperationKind.LOOKUP_ASSIGNMENT,
        lambda: adapter.gateway.get_assigned_agent(prop),
    )


# ============================================================
# Directory
# ============================================================

_SUMMARY_FIELDS = {f.name for f in dc_fields(PropertySummary)}


def _to_summary(item: Dict[str, Any]) -> PropertySummary:
    # Assignment records carry the property under propertyId/propertyTitle/...
    data = dict(item)
    if "propertyId" in data:
        data["id"] = data["propertyId"]
        data.setdefault("title", data.get("propertyTitle", ""))
        data.setdefault("address", data.get("propertyAddress", ""))
        if isinstance(data.get("assignedAt"), str):
            data.setdefault("assignedDate", data["assignedAt"])
    data["id"] = str(data.get("id", ""))
    return PropertySummary(**{k: v for k, v in data.items() if k in _SUMMARY_FIELDS})


async def list_directory(
    adapter: OperationAdapter,
    filters: Optional[Dict[str, Any]] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> OperationResult:
    inst = adapter.instance
    store = inst.store
    limit = limit or settings.DIRECTORY_PAGE_LIMIT
    errors = {}
    if not isinstance(page, int) or page < 1:
        errors["page"] = "must be >= 1"
    if not isinstance(limit, int) or not 1 <= limit <= MAX_PAGE_LIMIT:
        errors["limit"] = f"must be between 1 and {MAX_PAGE_LIMIT}"
    if errors:
        raise ValidationError(errors)

    query = dict(filters or {})
    if inst.role == Role.AGENT:
        query["agentId"] = store.data.agentId

    def _apply(result):
        # Only the agent's assignment list lives in session data; other directories are pure reads
        if inst.role == Role.AGENT:
            store.apply(assignedProperties=[_to_summary(item) for item in result.items])

    return await adapter.invoke(
        OperationKind.DIRECTORY,
        lambda: adapter.gateway.list_directory(inst.role.value, query, page, limit),
        _apply,
    )


OPERATIONS = {
    "register": register,
    "send_verification_code": send_verification_code,
    "verify_code": verify_code,
    "pay": pay,
    "assign_agent": assign_agent,
    "get_assigned_agent": get_assigned_agent,
    "list_directory": list_directory,
}
