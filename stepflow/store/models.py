import uuid
from dataclasses import dataclass, field
from typing import List, Optional

@dataclass
class PropertySummary:
    id: str
    title: str = ""
    address: str = ""
    price: float = 0.0
    status: str = ""
    assignedDate: str = ""
    priority: str = "medium"  # high/medium/low
    beds: int = 0
    baths: int = 0
    size: int = 0

@dataclass
class BuyerSession:
    # Registration (phase 1)
    name: str = ""
    email: str = ""
    phone: str = ""
    # Transient: only live while phase 1 is being edited
    password: str = ""
    confirmPassword: str = ""
    termsAccepted: bool = False
    registrationAccepted: bool = False

    # Verification (phase 2)
    otp: str = ""
    otpRequestId: Optional[str] = None
    otpVerified: bool = False

    # Selection (phase 3)
    selectedProperty: Optional[str] = None

    # Payment (phase 4)
    paymentAmountCents: int = 0
    paymentCompleted: bool = False
    paymentId: Optional[str] = None

@dataclass
class SellerSession:
    # Registration + code verification (phase 1)
    name: str = ""
    email: str = ""
    phone: str = ""
    password: str = ""
    confirmPassword: str = ""
    termsAccepted: bool = False
    registrationAccepted: bool = False
    otp: str = ""
    otpRequestId: Optional[str] = None
    otpVerified: bool = False

    # Property details (phase 2); listingId is the client-side draft handle
    listingId: str = field(default_factory=lambda: f"listing-{uuid.uuid4().hex[:12]}")
    address: str = ""
    price: float = 0.0
    propertyType: str = ""
    beds: int = 0
    baths: int = 0
    size: int = 0
    description: str = ""

    # Media (phase 3): references to already-uploaded files
    images: List[str] = field(default_factory=list)
    documents: List[str] = field(default_factory=list)

    # Submit (phase 4)
    assignedAgentId: Optional[str] = None
    assignedAt: Optional[int] = None

@dataclass
class AgentSession:
    agentId: str = ""

    # Assignment lifecycle
    assignedProperties: List[PropertySummary] = field(default_factory=list)
    selectedProperty: Optional[str] = None
    assignedDate: str = ""
    priority: str = ""
    status: str = "pending"  # pending/accepted

    # Scheduling (phase 4)
    inspectionDate: str = ""
    inspectionNotes: str = ""

@dataclass(frozen=True)
class PhaseTransition:
    sequence: int
    fromPhase: int
    toPhase: int
    action: str  # advance/retreat/goto
    atMs: int
