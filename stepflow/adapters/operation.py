"""
Async Operation Adapter
-----------------------
Uniform idle -> pending -> succeeded | failed contract around every external
call made on behalf of a WorkflowInstance.

Each invocation of a kind takes the next per-kind sequence number. Only the
response carrying the latest number may write into the session store; an
older response is a StaleResponse and is dropped. Cancellation is logical:
the superseded network call still runs to completion, its result is ignored.
"""
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from stepflow.core.errors import (
    REASON_BUSY,
    REASON_NETWORK,
    REASON_TIMEOUT,
    AsyncOperationError,
    StaleResponse,
    WorkflowError,
)
from stepflow.core.workflow import WorkflowInstance
from stepflow.observability.logging import log
from stepflow.settings import settings
from stepflow.utils.time import now_ms


class OperationKind(str, Enum):
    REGISTER = "register"
    SEND_OTP = "send_otp"
    VERIFY_OTP = "verify_otp"
    PAYMENT = "payment"
    ASSIGN_AGENT = "assign_agent"
    LOOKUP_ASSIGNMENT = "lookup_assignment"
    DIRECTORY = "directory"


class OperationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Kinds where a second call while one is in flight is refused instead of superseding it
REJECT_WHILE_PENDING = frozenset({OperationKind.PAYMENT})

# Session fields each kind writes on success; an edit that invalidates one of them
# supersedes a pending call of that kind
OWNED_FIELDS = {
    OperationKind.REGISTER: frozenset({"registrationAccepted"}),
    OperationKind.SEND_OTP: frozenset({"otpRequestId"}),
    OperationKind.VERIFY_OTP: frozenset({"otpVerified"}),
    OperationKind.PAYMENT: frozenset({"paymentCompleted", "paymentId"}),
    OperationKind.ASSIGN_AGENT: frozenset({"assignedAgentId", "assignedAt", "status", "assignedDate", "priority"}),
    OperationKind.DIRECTORY: frozenset({"assignedProperties"}),
}


@dataclass
class OperationState:
    kind: OperationKind
    status: OperationStatus = OperationStatus.IDLE
    sequence: int = 0
    result: Any = None
    error: Optional[str] = None
    reason: Optional[str] = None
    startedAtMs: Optional[int] = None
    finishedAtMs: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status.value,
            "sequence": self.sequence,
            "error": self.error,
            "reason": self.reason,
            "startedAtMs": self.startedAtMs,
            "finishedAtMs": self.finishedAtMs,
        }


@dataclass
class OperationResult:
    kind: OperationKind
    sequence: int
    status: OperationStatus
    value: Any = None
    error: Optional[WorkflowError] = None

    @property
    def ok(self) -> bool:
        return self.status == OperationStatus.SUCCEEDED

    @property
    def stale(self) -> bool:
        return isinstance(self.error, StaleResponse)

    @property
    def reason(self) -> Optional[str]:
        if isinstance(self.error, AsyncOperationError):
            return self.error.reason
        if self.stale:
            return "stale"
        return None


class OperationAdapter:
    def __init__(self, instance: WorkflowInstance, gateway, timeout_sec: Optional[float] = None):
        self.instance = instance
        self.gateway = gateway
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.OPERATION_TIMEOUT_SEC
        self._states: Dict[OperationKind, OperationState] = {k: OperationState(kind=k) for k in OperationKind}
        instance.store.on_invalidate(self.supersede)

    def state(self, kind: OperationKind) -> OperationState:
        return self._states[OperationKind(kind)]

    def states(self) -> Dict[str, Dict[str, Any]]:
        return {k.value: s.to_dict() for k, s in self._states.items()}

    def is_pending(self, kind: OperationKind) -> bool:
        return self.state(kind).status == OperationStatus.PENDING

    def supersede(self, fields) -> List[OperationKind]:
        """Turn pending calls that would write any of `fields` into stale ones."""
        superseded = []
        for kind, owned in OWNED_FIELDS.items():
            st = self._states[kind]
            if st.status != OperationStatus.PENDING or not owned & set(fields):
                continue
            st.sequence += 1
            st.status = OperationStatus.IDLE
            st.startedAtMs = None
            superseded.append(kind)
            self._log("operation_superseded", kind, st.sequence, fields=sorted(owned & set(fields)))
        return superseded

    def _log(self, event: str, kind: OperationKind, sequence: int, **fields) -> None:
        log(
            event=event,
            instanceId=self.instance.instanceId,
            role=self.instance.role.value,
            kind=kind.value,
            sequence=sequence,
            **fields,
        )

    async def invoke(
        self,
        kind: OperationKind,
        call: Callable[[], Awaitable[Any]],
        apply: Optional[Callable[[Any], None]] = None,
        on_settle: Optional[Callable[[], None]] = None,
    ) -> OperationResult:
        """
        Run `call`; when its response is still the latest for `kind`, hand the
        value to `apply`, which writes the fields this operation owns.
        `on_settle` runs once the call resolved, whatever the outcome.
        """
        kind = OperationKind(kind)
        st = self._states[kind]

        if st.status == OperationStatus.PENDING and kind in REJECT_WHILE_PENDING:
            err = AsyncOperationError(REASON_BUSY, f"{kind.value} already in progress", kind=kind.value)
            self._log("operation_rejected", kind, st.sequence)
            return OperationResult(kind=kind, sequence=st.sequence, status=OperationStatus.FAILED, error=err)

        sequence = st.sequence + 1
        st.sequence = sequence
        st.status = OperationStatus.PENDING
        st.result = None
        st.error = None
        st.reason = None
        st.startedAtMs = now_ms()
        st.finishedAtMs = None
        self._log("operation_started", kind, sequence)

        value = None
        error: Optional[AsyncOperationError] = None
        try:
            value = await asyncio.wait_for(call(), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            error = AsyncOperationError(REASON_TIMEOUT, f"{kind.value} timed out after {self.timeout_sec}s", kind=kind.value)
        except AsyncOperationError as e:
            e.kind = e.kind or kind.value
            error = e
        except Exception as e:
            error = AsyncOperationError(REASON_NETWORK, f"{kind.value} failed: {type(e).__name__}", kind=kind.value)
            self._log("operation_exception", kind, sequence, errorType=type(e).__name__, error=str(e)[:500])
        finally:
            if on_settle is not None:
                on_settle()

        if sequence != st.sequence:
            stale = StaleResponse(kind.value, sequence, st.sequence)
            self._log("operation_stale", kind, sequence, latest=st.sequence)
            return OperationResult(kind=kind, sequence=sequence, status=OperationStatus.FAILED, value=value, error=stale)

        st.finishedAtMs = now_ms()
        if error is not None:
            st.status = OperationStatus.FAILED
            st.error = error.message
            st.reason = error.reason
            self._log("operation_failed", kind, sequence, reason=error.reason, error=error.message)
            return OperationResult(kind=kind, sequence=sequence, status=OperationStatus.FAILED, error=error)

        if apply is not None:
            try:
                apply(value)
            except Exception as e:
                st.status = OperationStatus.FAILED
                st.error = f"{kind.value} result could not be applied: {type(e).__name__}"
                st.reason = None
                self._log("operation_apply_failed", kind, sequence, errorType=type(e).__name__, error=str(e)[:500])
                raise
        st.status = OperationStatus.SUCCEEDED
        st.result = value
        self._log("operation_succeeded", kind, sequence)
        return OperationResult(kind=kind, sequence=sequence, status=OperationStatus.SUCCEEDED, value=value)
