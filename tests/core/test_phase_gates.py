import pytest
from stepflow.core import gates
from stepflow.core.phases import (
    ACTIVE,
    AGENT,
    BUYER,
    COMPLETED,
    LOCKED,
    SELLER,
    UNLOCKED_INCOMPLETE,
)
from stepflow.store.models import AgentSession, BuyerSession, PropertySummary, SellerSession


def test_fresh_buyer_only_first_phase_open():
    data = BuyerSession()
    report = gates.evaluate(BUYER, data, current_phase=1)
    assert report.statuses == {1: ACTIVE, 2: LOCKED, 3: LOCKED, 4: LOCKED}
    assert report.accessible == (1,)
    assert report.next_open == 1
    assert report.complete is False


def test_buyer_gates_open_in_order():
    data = BuyerSession(registrationAccepted=True)
    assert gates.phase_status(BUYER, data, 1, current_phase=2) == COMPLETED
    assert gates.phase_status(BUYER, data, 2, current_phase=2) == ACTIVE
    assert gates.phase_status(BUYER, data, 3, current_phase=2) == LOCKED

    data.otpVerified = True
    assert gates.phase_status(BUYER, data, 2, current_phase=1) == COMPLETED
    assert gates.phase_status(BUYER, data, 3, current_phase=1) == UNLOCKED_INCOMPLETE
    assert gates.next_open_phase(BUYER, data) == 3


def test_later_gate_cannot_skip_an_earlier_one():
    # Selection and verification without accepted registration do not open anything
    data = BuyerSession(otpVerified=True, selectedProperty="prop-1")
    assert gates.accessible_phases(BUYER, data) == (1,)
    assert gates.is_reachable(BUYER, data, 4) is False
    assert gates.phase_status(BUYER, data, 4, current_phase=4) == LOCKED


def test_reset_precondition_relocks_dependent_phases():
    data = BuyerSession(registrationAccepted=True, otpVerified=True, selectedProperty="prop-1")
    assert gates.phase_status(BUYER, data, 4, current_phase=4) == ACTIVE

    data.otpVerified = False
    assert gates.phase_status(BUYER, data, 3, current_phase=4) == LOCKED
    assert gates.phase_status(BUYER, data, 4, current_phase=4) == LOCKED
    assert gates.phase_status(BUYER, data, 2, current_phase=4) == UNLOCKED_INCOMPLETE


def test_buyer_completion_requires_payment():
    data = BuyerSession(registrationAccepted=True, otpVerified=True, selectedProperty="prop-1")
    assert gates.is_complete(BUYER, data) is False
    data.paymentCompleted = True
    assert gates.is_complete(BUYER, data) is True
    assert gates.next_open_phase(BUYER, data) is None


def test_seller_details_need_registration_and_code():
    data = SellerSession(registrationAccepted=True)
    assert gates.is_reachable(SELLER, data, 2) is False
    data.otpVerified = True
    assert gates.is_reachable(SELLER, data, 2) is True

    assert gates.is_reachable(SELLER, data, 3) is False
    data.address = "1 Elm St"
    data.price = 420000
    assert gates.is_reachable(SELLER, data, 3) is True
    data.images = ["front.jpg"]
    assert gates.is_reachable(SELLER, data, 4) is True
    assert gates.is_complete(SELLER, data) is False
    data.assignedAgentId = "agent-1"
    assert gates.is_complete(SELLER, data) is True


def test_seller_blank_address_does_not_count():
    data = SellerSession(registrationAccepted=True, otpVerified=True, address="   ", price=10)
    assert gates.is_reachable(SELLER, data, 3) is False


def test_agent_gates_follow_assignment_lifecycle():
    data = AgentSession(agentId="agent-1")
    assert gates.accessible_phases(AGENT, data) == (1,)
    data.assignedProperties = [PropertySummary(id="prop-1")]
    data.selectedProperty = "prop-1"
    assert gates.accessible_phases(AGENT, data) == (1, 2, 3)
    data.status = "accepted"
    assert gates.accessible_phases(AGENT, data) == (1, 2, 3, 4)
    data.inspectionDate = "2024-04-02"
    assert gates.is_complete(AGENT, data) is True


@pytest.mark.parametrize("phase", [0, 5, -1])
def test_out_of_range_phase_is_locked(phase):
    assert gates.phase_status(BUYER, BuyerSession(), phase, current_phase=1) == LOCKED


def test_evaluation_does_not_mutate_data():
    data = BuyerSession(registrationAccepted=True)
    before = repr(data)
    gates.evaluate(BUYER, data, current_phase=2)
    assert repr(data) == before
