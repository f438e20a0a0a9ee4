import math
from typing import Any, Dict, Optional

import httpx

from stepflow.adapters.gateway import (
    Assignment,
    DirectoryPage,
    PaymentConfirmation,
    PaymentIntent,
    RegistrationReceipt,
    VerificationRequest,
    VerificationResult,
)
from stepflow.core.errors import (
    REASON_NETWORK,
    REASON_NOT_FOUND,
    REASON_RATE_LIMITED,
    REASON_VALIDATION,
    AsyncOperationError,
)
from stepflow.observability.logging import log
from stepflow.settings import settings
from stepflow.utils.time import parse_timestamp_ms

# Which backend listing a role's selection phase reads from
DIRECTORY_PATHS = {
    "buyer": "/properties",
    "seller": "/agents",
    "agent": "/assignments",
}


def _reason_for_status(status_code: int) -> str:
    if status_code in (400, 422):
        return REASON_VALIDATION
    if status_code == 404:
        return REASON_NOT_FOUND
    if status_code == 429:
        return REASON_RATE_LIMITED
    return REASON_NETWORK


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:200] or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body.get("detail") or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"


def _unwrap(body: Any) -> Any:
    """Backend answers either a bare object or {"success": true, "data": {...}}."""
    if isinstance(body, dict) and "data" in body and ("success" in body or len(body) == 1):
        data = body["data"]
        if isinstance(data, list):
            # Listing envelope: keep total/page/totalPages next to the items
            rest = {k: v for k, v in body.items() if k not in ("data", "success")}
            return {**rest, "items": data}
        return data
    return body


class HttpGateway:
    """WorkflowGateway over the REST backend."""

    def __init__(self, base_url: Optional[str] = None, timeout_sec: Optional[float] = None, api_key: str = ""):
        self.base_url = (base_url or settings.GATEWAY_BASE_URL).rstrip("/")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_sec or settings.GATEWAY_TIMEOUT_SEC,
            headers=headers,
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    async def _request(self, method: str, path: str, *, json: Any = None, params: Any = None,
                       allow_not_found: bool = False) -> Any:
        try:
            resp = await self.client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            log(event="gateway_timeout", method=method, path=path, errorType=type(e).__name__)
            raise AsyncOperationError(REASON_NETWORK, "Request timed out") from e
        except httpx.RequestError as e:
            log(event="gateway_request_failed", method=method, path=path, errorType=type(e).__name__, error=str(e)[:500])
            raise AsyncOperationError(REASON_NETWORK, "Service unavailable") from e

        if resp.status_code == 404 and allow_not_found:
            return None
        if not 200 <= resp.status_code < 300:
            reason = _reason_for_status(resp.status_code)
            message = _error_message(resp)
            log(event="gateway_error_response", method=method, path=path, statusCode=resp.status_code, reason=reason)
            raise AsyncOperationError(reason, message, status_code=resp.status_code)
        try:
            return _unwrap(resp.json())
        except ValueError as e:
            raise AsyncOperationError(REASON_NETWORK, "Malformed response") from e

    async def send_verification_code(self, contact: str) -> VerificationRequest:
        body = await self._request("POST", "/otp/send", json={"contact": contact})
        return VerificationRequest(requestId=str(body.get("requestId") or body.get("verification_sid")))

    async def verify_code(self, request_id: str, code: str) -> VerificationResult:
        body = await self._request("POST", "/otp/verify", json={"requestId": request_id, "code": code})
        return VerificationResult(verified=bool(body.get("verified")))

    async def register(self, role: str, profile: Dict[str, Any]) -> RegistrationReceipt:
        body = await self._request("POST", "/auth/register", json={**profile, "type": role})
        user = body.get("user") if isinstance(body.get("user"), dict) else body
        return RegistrationReceipt(userId=str(user.get("id") or user.get("userId") or ""))

    async def create_payment_intent(self, amount_cents: int, metadata: Dict[str, Any]) -> PaymentIntent:
        body = await self._request("POST", "/create-payment-intent", json={"amount": amount_cents, "metadata": metadata})
        return PaymentIntent(clientSecret=str(body["clientSecret"]), intentId=str(body.get("id") or ""))

    async def confirm_payment(self, client_secret: str) -> PaymentConfirmation:
        body = await self._request("POST", "/payments/confirm", json={"clientSecret": client_secret})
        return PaymentConfirmation(paymentId=str(body.get("paymentId") or body.get("id")), status=str(body.get("status")))

    def _assignment(self, body: Dict[str, Any]) -> Assignment:
        agent = body.get("assignedAgent") or body.get("agent") or {}
        return Assignment(
            propertyId=str(body.get("propertyId")),
            agentId=str(body.get("agentId") or agent.get("id") or ""),
            assignedAgent=agent,
            assignedAtMs=parse_timestamp_ms(body.get("assignedAt")),
            status=str(body.get("status") or "active"),
        )

    async def assign_agent(self, property_id: str, agent_id: str) -> Assignment:
        body = await self._request("POST", f"/properties/{property_id}/assign-agent", json={"agentId": agent_id})
        return self._assignment(body)

    async def get_assigned_agent(self, property_id: str) -> Optional[Assignment]:
        body = await self._request("GET", f"/properties/{property_id}/assign-agent", allow_not_found=True)
        return self._assignment(body) if body else None

    async def list_directory(self, role: str, filters: Dict[str, Any], page: int, limit: int) -> DirectoryPage:
        path = DIRECTORY_PATHS.get(role)
        if path is None:
            raise AsyncOperationError(REASON_VALIDATION, f"No directory for role {role}")
        params = {k: v for k, v in filters.items() if v is not None}
        params.update({"page": page, "limit": limit})
        body = await self._request("GET", path, params=params)
        return self._page(body, page, limit)

    @staticmethod
    def _page(body: Any, page: int, limit: int) -> DirectoryPage:
        # The listing endpoints return {success, data: [...], total, page, totalPages}
        if isinstance(body, list):
            items, total = body, len(body)
            return DirectoryPage(items=items, total=total, page=page, totalPages=math.ceil(total / limit) if limit else 0)
        items = body.get("items") or body.get("properties") or []
        total = int(body.get("total", len(items)))
        return DirectoryPage(
            items=list(items),
            total=total,
            page=int(body.get("page", page)),
            totalPages=int(body.get("totalPages", math.ceil(total / limit) if limit else 0)),
        )

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
