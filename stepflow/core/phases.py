from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Tuple

from stepflow.store.models import AgentSession, BuyerSession, SellerSession


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    AGENT = "agent"


# Phase statuses
LOCKED = "locked"
UNLOCKED_INCOMPLETE = "unlocked-incomplete"
ACTIVE = "active"
COMPLETED = "completed"


Gate = Callable[[Any], bool]


def _always(_data) -> bool:
    return True


@dataclass(frozen=True)
class PhaseSpec:
    id: int
    key: str
    title: str
    # Entry predicate: may this phase be entered given the data collected so far?
    gate: Gate = _always


@dataclass(frozen=True)
class RoleConfig:
    role: Role
    phases: Tuple[PhaseSpec, ...]
    # Exit predicate of the last phase; True means the flow is done
    completion: Gate
    session_factory: Callable[[], Any]
    # Written only by adapter operations, never by user edits
    owned_fields: frozenset = frozenset()
    # Editable only while phase 1 is current; cleared once registration resolves
    transient_fields: frozenset = frozenset()
    # Editing the key resets the listed fields to their defaults
    invalidations: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def max_phase(self) -> int:
        return len(self.phases)


CREDENTIAL_FIELDS = frozenset({"password", "confirmPassword"})

_CONTACT_RESETS = ("registrationAccepted", "otpRequestId", "otpVerified")


# ============================================================
# Buyer
# ============================================================

# Phase 1: Register. Collects identity + credentials; the register call accepts them.
# Phase 2: Verify. One-time code sent to the contact; requires accepted registration.
# Phase 3: Select. Property choice from the directory; requires a verified code.
# Phase 4: Payment. Intent + confirmation; requires a selected property.
# Done when the payment adapter reported success.
BUYER = RoleConfig(
    role=Role.BUYER,
    phases=(
        PhaseSpec(1, "register", "Register"),
        PhaseSpec(2, "verify", "Verify", lambda d: d.registrationAccepted),
        PhaseSpec(3, "select", "Select Property", lambda d: d.otpVerified),
        PhaseSpec(4, "payment", "Payment", lambda d: d.selectedProperty is not None),
    ),
    completion=lambda d: d.paymentCompleted,
    session_factory=BuyerSession,
    owned_fields=frozenset({"registrationAccepted", "otpRequestId", "otpVerified", "paymentCompleted", "paymentId"}),
    transient_fields=CREDENTIAL_FIELDS,
    invalidations={
        "name": ("registrationAccepted",),
        "email": _CONTACT_RESETS,
        "phone": _CONTACT_RESETS,
        "otp": ("otpVerified",),
        # Re-entered credentials need a fresh register call, which clears them again
        "password": ("registrationAccepted",),
        "confirmPassword": ("registrationAccepted",),
    },
)


# ============================================================
# Seller
# ============================================================

# Phase 1: Register. Account creation followed by code verification.
# Phase 2: Property Details. Requires accepted registration and a verified code.
# Phase 3: Upload Media. Requires an address and a positive price.
# Phase 4: Submit. Requires at least one image; submitting assigns a listing agent.
# Done once an agent is assigned to the listing.
SELLER = RoleConfig(
    role=Role.SELLER,
    phases=(
        PhaseSpec(1, "register", "Register"),
        PhaseSpec(2, "details", "Property Details", lambda d: d.registrationAccepted and d.otpVerified),
        PhaseSpec(3, "media", "Upload Media", lambda d: bool(d.address.strip()) and d.price > 0),
        PhaseSpec(4, "submit", "Submit", lambda d: len(d.images) > 0),
    ),
    completion=lambda d: d.assignedAgentId is not None,
    session_factory=SellerSession,
    owned_fields=frozenset({
        "registrationAccepted", "otpRequestId", "otpVerified", "listingId", "assignedAgentId", "assignedAt",
    }),
    transient_fields=CREDENTIAL_FIELDS,
    invalidations={
        "name": ("registrationAccepted",),
        "email": _CONTACT_RESETS,
        "phone": _CONTACT_RESETS,
        "otp": ("otpVerified",),
        # Re-entered credentials need a fresh register call, which clears them again
        "password": ("registrationAccepted",),
        "confirmPassword": ("registrationAccepted",),
    },
)


# ============================================================
# Agent
# ============================================================

# Phase 1: Assigned. Loads the agent's assignment list.
# Phase 2: Review. Requires at least one assigned property.
# Phase 3: Accept. Requires a selected property.
# Phase 4: Schedule. Requires the assignment to be accepted.
# Done once an inspection date is set.
AGENT = RoleConfig(
    role=Role.AGENT,
    phases=(
        PhaseSpec(1, "assigned", "Assigned"),
        PhaseSpec(2, "review", "Review", lambda d: len(d.assignedProperties) > 0),
        PhaseSpec(3, "accept", "Accept", lambda d: d.selectedProperty is not None),
        PhaseSpec(4, "schedule", "Schedule Inspection", lambda d: d.status == "accepted"),
    ),
    completion=lambda d: bool(d.inspectionDate.strip()),
    session_factory=AgentSession,
    owned_fields=frozenset({"agentId", "assignedProperties", "assignedDate", "priority", "status"}),
    invalidations={
        "selectedProperty": ("assignedDate", "priority", "status", "inspectionDate"),
    },
)


ROLE_CONFIGS: Dict[Role, RoleConfig] = {c.role: c for c in (BUYER, SELLER, AGENT)}


def get_role_config(role) -> RoleConfig:
    return ROLE_CONFIGS[Role(role)]
