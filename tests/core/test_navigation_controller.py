import pytest
from stepflow.core.navigation import NavigationController
from stepflow.core.phases import ACTIVE, COMPLETED, LOCKED
from stepflow.core.workflow import create_workflow


@pytest.fixture
def buyer():
    inst = create_workflow("buyer")
    return inst, NavigationController(inst)


def test_advance_blocked_by_locked_gate(buyer):
    inst, nav = buyer
    assert nav.advance() is False
    assert inst.currentPhase == 1
    assert inst.phaseHistory == ()


def test_advance_when_gate_opens(buyer):
    inst, nav = buyer
    inst.store.apply(registrationAccepted=True)
    assert nav.advance() is True
    assert inst.currentPhase == 2
    assert inst.phase_status(1) == COMPLETED
    assert inst.phase_status(2) == ACTIVE
    assert inst.phaseHistory[-1].action == "advance"


def test_phase_stays_in_bounds(buyer):
    inst, nav = buyer
    assert nav.retreat() is False
    inst.store.apply(registrationAccepted=True, otpVerified=True, selectedProperty="prop-1", paymentCompleted=True)
    for _ in range(10):
        nav.advance()
    assert inst.currentPhase == inst.maxPhase == 4
    assert nav.advance() is False
    for _ in range(10):
        nav.retreat()
    assert inst.currentPhase == 1


def test_retreat_then_advance_is_idempotent(buyer):
    inst, nav = buyer
    inst.store.apply(registrationAccepted=True, otpVerified=True)
    nav.advance()
    nav.advance()
    data_before = dict(inst.sessionData)
    assert nav.retreat() is True
    assert nav.advance() is True
    assert inst.currentPhase == 3
    assert dict(inst.sessionData) == data_before


def test_retreat_keeps_session_data(buyer):
    inst, nav = buyer
    inst.edit(name="Ann Lee")
    inst.store.apply(registrationAccepted=True)
    nav.advance()
    nav.retreat()
    assert inst.sessionData["name"] == "Ann Lee"
    assert inst.sessionData["registrationAccepted"] is True


def test_invalidated_precondition_blocks_forward_only(buyer):
    inst, nav = buyer
    inst.store.apply(registrationAccepted=True, otpVerified=True)
    nav.advance()
    nav.advance()
    assert inst.currentPhase == 3

    inst.edit(otp="999999")
    assert inst.sessionData["otpVerified"] is False
    # Not rewound, but no way forward until the code is verified again
    assert inst.currentPhase == 3
    assert inst.phase_status(3) == LOCKED
    inst.edit(selectedProperty="prop-1")
    assert nav.advance() is False
    assert nav.retreat() is True
    assert inst.currentPhase == 2


def test_goto_completed_and_next_open_only(buyer):
    inst, nav = buyer
    inst.store.apply(registrationAccepted=True, otpVerified=True)
    assert nav.go_to(4) is False
    assert nav.go_to(3) is True
    assert inst.currentPhase == 3
    assert nav.go_to(1) is True
    assert nav.go_to(2) is True
    assert inst.phaseHistory[-1].action == "goto"


def test_goto_skipping_an_unsatisfied_phase_is_refused(buyer):
    inst, nav = buyer
    inst.store.apply(registrationAccepted=True)
    # Phase 2 is the next open one; nothing past it
    assert nav.go_to(3) is False
    assert nav.go_to(2) is True


@pytest.mark.parametrize("target", [0, 5, 1, True, "2", None])
def test_goto_invalid_targets_are_noops(buyer, target):
    inst, nav = buyer
    inst.store.apply(registrationAccepted=True)
    assert nav.go_to(target) is False
    assert inst.currentPhase == 1


def test_blocked_navigation_logs_gate_violation(buyer, capsys):
    _, nav = buyer
    nav.advance()
    out = capsys.readouterr().out
    assert '"event": "gate_violation"' in out
    assert "phase 2 is locked" in out
