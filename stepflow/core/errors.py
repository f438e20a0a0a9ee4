"""
Error taxonomy for the workflow engine.

- ValidationError: bad user input, recovered locally by re-prompting.
- AsyncOperationError: a collaborator call failed (network, server, timeout...);
  retryable, session data untouched.
- GateViolation: navigation towards a locked phase. The navigation controller
  turns it into a no-op and never lets it escape.
- StaleResponse: a response for a superseded request; discarded.
"""
from typing import Dict, Optional

# AsyncOperationError reasons
REASON_NETWORK = "network"
REASON_VALIDATION = "validation"
REASON_NOT_FOUND = "not_found"
REASON_RATE_LIMITED = "rate_limited"
REASON_TIMEOUT = "timeout"
REASON_BUSY = "busy"


class WorkflowError(Exception):
    pass


class ValidationError(WorkflowError):
    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class AsyncOperationError(WorkflowError):
    def __init__(self, reason: str, message: str, kind: Optional[str] = None, status_code: Optional[int] = None):
        self.reason = reason
        self.message = message
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.reason != REASON_VALIDATION


class GateViolation(WorkflowError):
    def __init__(self, phase: int, status: str):
        self.phase = phase
        self.status = status
        super().__init__(f"phase {phase} is {status}")


class StaleResponse(WorkflowError):
    def __init__(self, kind: str, sequence: int, latest: int):
        self.kind = kind
        self.sequence = sequence
        self.latest = latest
        super().__init__(f"{kind} response #{sequence} superseded by #{latest}")
