import asyncio

import pytest
from stepflow.adapters import actions
from stepflow.adapters.memory_gateway import InMemoryGateway
from stepflow.adapters.operation import OperationAdapter, OperationKind, OperationStatus
from stepflow.core.errors import REASON_NETWORK, REASON_VALIDATION, AsyncOperationError, ValidationError
from stepflow.core.navigation import NavigationController
from stepflow.core.workflow import create_workflow

REGISTRATION = {
    "name": "Ann Lee",
    "email": "ann@example.com",
    "phone": "512-555-0100",
    "password": "Secret123",
    "confirmPassword": "Secret123",
    "termsAccepted": True,
}


def _start(role, gateway=None, **seed):
    inst = create_workflow(role, **seed)
    return inst, NavigationController(inst), OperationAdapter(inst, gateway or InMemoryGateway())


class FlakyPaymentGateway(InMemoryGateway):
    """Fails the first confirmation, succeeds afterwards."""

    def __init__(self):
        super().__init__()
        self.confirm_calls = 0

    async def confirm_payment(self, client_secret):
        self.confirm_calls += 1
        if self.confirm_calls == 1:
            raise AsyncOperationError(REASON_NETWORK, "card processor unavailable")
        return await super().confirm_payment(client_secret)


def test_registration_validation_messages():
    inst = create_workflow("buyer")
    inst.edit(name="A", email="not-an-email", phone="123", password="short", confirmPassword="nope")
    errors = actions.validate_registration(inst.store.data)
    assert errors == {
        "name": "Name must be at least 2 characters",
        "email": "Please enter a valid email address",
        "phone": "Please enter a valid phone number",
        "password": "Password must be at least 8 characters",
        "confirmPassword": "Passwords do not match",
        "terms": "You must accept the terms and conditions",
    }


@pytest.mark.parametrize("password,msg", [
    ("alllowercase1", "Password must contain an uppercase letter"),
    ("ALLUPPERCASE1", "Password must contain a lowercase letter"),
    ("NoDigitsHere", "Password must contain a number"),
    ("Secret123", None),
])
def test_password_rules(password, msg):
    assert actions.validate_password(password) == msg


@pytest.mark.asyncio
async def test_invalid_registration_sends_nothing():
    gateway = InMemoryGateway()
    inst, _, adapter = _start("buyer", gateway)
    with pytest.raises(ValidationError):
        await actions.register(adapter)
    assert gateway.users == []
    assert adapter.state(OperationKind.REGISTER).status == OperationStatus.IDLE


@pytest.mark.asyncio
async def test_credentials_cleared_after_successful_registration():
    inst, _, adapter = _start("buyer")
    inst.edit(**REGISTRATION)
    result = await actions.register(adapter)
    assert result.ok
    assert inst.sessionData["registrationAccepted"] is True
    assert inst.sessionData["password"] == ""
    assert inst.sessionData["confirmPassword"] == ""


@pytest.mark.asyncio
async def test_credentials_cleared_after_failed_registration():
    gateway = InMemoryGateway()
    gateway.users.append({"id": "buyer-1", "email": "ann@example.com", "type": "buyer", "name": "Ann"})
    inst, _, adapter = _start("buyer", gateway)
    inst.edit(**REGISTRATION)
    result = await actions.register(adapter)
    assert result.reason == REASON_VALIDATION
    assert inst.sessionData["registrationAccepted"] is False
    assert inst.sessionData["password"] == ""


@pytest.mark.asyncio
async def test_buyer_happy_path():
    inst, nav, adapter = _start("buyer")

    inst.edit(**REGISTRATION)
    assert (await actions.register(adapter)).ok
    assert nav.advance() is True

    assert (await actions.send_verification_code(adapter)).ok
    assert inst.sessionData["otpRequestId"]
    wrong = await actions.verify_code(adapter, code="000000")
    assert wrong.reason == REASON_VALIDATION
    assert nav.advance() is False
    assert (await actions.verify_code(adapter, code="123456")).ok
    assert nav.advance() is True

    listing = await actions.list_directory(adapter, filters={"search": "condo"})
    assert [p["id"] for p in listing.value.items] == ["prop-2"]
    inst.edit(selectedProperty="prop-2")
    assert nav.advance() is True
    assert inst.currentPhase == 4

    paid = await actions.pay(adapter, amount_cents=65000)
    assert paid.ok
    assert inst.sessionData["paymentCompleted"] is True
    assert inst.sessionData["paymentId"].startswith("pi_mock_")
    assert inst.is_complete


@pytest.mark.asyncio
async def test_payment_failure_then_retry():
    gateway = FlakyPaymentGateway()
    inst, nav, adapter = _start("buyer", gateway)
    inst.store.apply(registrationAccepted=True, otpVerified=True, selectedProperty="prop-1")
    for _ in range(3):
        nav.advance()
    assert inst.currentPhase == 4

    failed = await actions.pay(adapter)
    assert not failed.ok
    assert failed.reason == REASON_NETWORK
    assert inst.sessionData["paymentCompleted"] is False
    assert inst.currentPhase == 4
    assert adapter.state(OperationKind.PAYMENT).error == "card processor unavailable"

    retried = await actions.pay(adapter)
    assert retried.ok
    assert inst.sessionData["paymentCompleted"] is True
    assert inst.currentPhase == 4


@pytest.mark.asyncio
async def test_payment_local_validation():
    inst, _, adapter = _start("buyer")
    with pytest.raises(ValidationError) as exc:
        await actions.pay(adapter)
    assert "selectedProperty" in exc.value.errors

    inst.store.apply(selectedProperty="prop-1")
    with pytest.raises(ValidationError) as exc:
        await actions.pay(adapter, amount_cents=10)
    assert "amount" in exc.value.errors

    inst.store.apply(paymentCompleted=True)
    with pytest.raises(ValidationError):
        await actions.pay(adapter)


@pytest.mark.asyncio
async def test_concurrent_payment_only_one_charge():
    gateway = InMemoryGateway(latency_ms=20)
    inst, _, adapter = _start("buyer", gateway)
    inst.store.apply(selectedProperty="prop-1")
    first, second = await asyncio.gather(actions.pay(adapter), actions.pay(adapter))
    assert first.ok
    assert second.reason == "busy"
    assert len(gateway._intents) == 1


@pytest.mark.asyncio
async def test_operation_not_available_for_role():
    _, _, adapter = _start("agent", agentId="agent-1")
    with pytest.raises(ValidationError):
        await actions.pay(adapter)
    with pytest.raises(ValidationError):
        await actions.register(adapter)


@pytest.mark.asyncio
async def test_agent_assignment_flow():
    inst, nav, adapter = _start("agent", agentId="agent-1")

    listing = await actions.list_directory(adapter)
    assert listing.ok
    # Newest assignment first
    assert [p.id for p in inst.store.data.assignedProperties] == ["prop-2", "prop-1"]
    assert nav.advance() is True

    inst.edit(selectedProperty="prop-1")
    assert nav.advance() is True
    assert nav.advance() is False

    accepted = await actions.assign_agent(adapter)
    assert accepted.ok
    assert inst.sessionData["status"] == "accepted"
    assert inst.sessionData["priority"] == "high"
    assert inst.sessionData["assignedDate"].endswith("Z")
    assert nav.advance() is True

    inst.edit(inspectionDate="2024-04-02T10:00", inspectionNotes="Bring the keys")
    assert inst.is_complete


@pytest.mark.asyncio
async def test_agent_directory_scoped_to_agent():
    inst, _, adapter = _start("agent", agentId="agent-2")
    await actions.list_directory(adapter)
    assert [p.id for p in inst.store.data.assignedProperties] == ["prop-3"]


@pytest.mark.asyncio
async def test_seller_listing_flow():
    inst, nav, adapter = _start("seller")

    inst.edit(**REGISTRATION)
    assert (await actions.register(adapter)).ok
    assert nav.advance() is False  # code still unverified
    assert (await actions.send_verification_code(adapter)).ok
    inst.edit(otp="123456")
    assert (await actions.verify_code(adapter)).ok
    assert nav.advance() is True

    inst.edit(address="12 River Rd, Austin, TX", price=450000, propertyType="Condo", beds=2)
    assert nav.advance() is True
    inst.edit(images=["front.jpg", "kitchen.jpg"])
    assert nav.advance() is True

    agents = await actions.list_directory(adapter, filters={"languages": "Mandarin"})
    assert [a["id"] for a in agents.value.items] == ["agent-2"]

    assigned = await actions.assign_agent(adapter, agent_id="agent-2")
    assert assigned.ok
    assert inst.sessionData["assignedAgentId"] == "agent-2"
    assert isinstance(inst.sessionData["assignedAt"], int)
    assert inst.is_complete

    lookup = await actions.get_assigned_agent(adapter)
    assert lookup.value.agentId == "agent-2"
    assert lookup.value.propertyId == inst.sessionData["listingId"]


@pytest.mark.asyncio
async def test_unknown_agent_is_not_found():
    inst, _, adapter = _start("seller")
    result = await actions.assign_agent(adapter, agent_id="agent-404")
    assert result.reason == "not_found"
    assert inst.sessionData["assignedAgentId"] is None


@pytest.mark.asyncio
async def test_directory_paging_validation():
    _, _, adapter = _start("buyer")
    with pytest.raises(ValidationError) as exc:
        await actions.list_directory(adapter, page=0, limit=500)
    assert set(exc.value.errors) == {"page", "limit"}

    page = await actions.list_directory(adapter, page=2, limit=2)
    assert page.value.total == 3
    assert page.value.totalPages == 2
    assert [p["id"] for p in page.value.items] == ["prop-3"]


class HeldGateway(InMemoryGateway):
    """Keeps verify_code and assign_agent open until the test releases them."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def verify_code(self, request_id, code):
        await self.release.wait()
        return await super().verify_code(request_id, code)

    async def assign_agent(self, property_id, agent_id):
        await self.release.wait()
        return await super().assign_agent(property_id, agent_id)


@pytest.mark.asyncio
async def test_contact_edit_while_verifying_drops_the_verification():
    gateway = HeldGateway()
    inst, _, adapter = _start("buyer", gateway)
    inst.edit(email="ann@example.com")
    assert (await actions.send_verification_code(adapter)).ok

    pending = asyncio.create_task(actions.verify_code(adapter, code="123456"))
    await asyncio.sleep(0)
    assert adapter.is_pending(OperationKind.VERIFY_OTP)

    inst.edit(email="other@example.com")
    gateway.release.set()
    result = await pending

    assert result.stale
    assert inst.sessionData["otpVerified"] is False
    assert inst.sessionData["otpRequestId"] is None
    assert adapter.state(OperationKind.VERIFY_OTP).status == OperationStatus.IDLE


@pytest.mark.asyncio
async def test_switching_assignment_while_accepting_keeps_new_one_pending():
    gateway = HeldGateway()
    inst, _, adapter = _start("agent", gateway, agentId="agent-1")
    await actions.list_directory(adapter)
    inst.edit(selectedProperty="prop-1")

    pending = asyncio.create_task(actions.assign_agent(adapter))
    await asyncio.sleep(0)
    inst.edit(selectedProperty="prop-2")
    gateway.release.set()
    result = await pending

    assert result.stale
    assert inst.sessionData["selectedProperty"] == "prop-2"
    assert inst.sessionData["status"] == "pending"
    assert inst.sessionData["assignedDate"] == ""


@pytest.mark.asyncio
async def test_reentered_password_requires_new_registration():
    inst, nav, adapter = _start("buyer")
    inst.edit(**REGISTRATION)
    assert (await actions.register(adapter)).ok
    assert nav.advance() is True
    assert nav.retreat() is True

    # A fresh address so the mock backend accepts the second account
    inst.edit(email="ann.lee@example.com", password="Another123", confirmPassword="Another123")
    assert inst.sessionData["registrationAccepted"] is False
    assert nav.advance() is False
    assert inst.currentPhase == 1

    assert (await actions.register(adapter)).ok
    assert nav.advance() is True
    assert inst.sessionData["password"] == ""
    assert inst.sessionData["confirmPassword"] == ""


@pytest.mark.asyncio
async def test_explicit_zero_amount_is_rejected():
    gateway = InMemoryGateway()
    inst, _, adapter = _start("buyer", gateway)
    inst.store.apply(selectedProperty="prop-1")
    with pytest.raises(ValidationError) as exc:
        await actions.pay(adapter, amount_cents=0)
    assert "amount" in exc.value.errors
    assert gateway._intents == {}
