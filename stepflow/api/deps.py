from typing import Optional

from stepflow.adapters.http_gateway import HttpGateway
from stepflow.adapters.memory_gateway import InMemoryGateway
from stepflow.core.registry import WorkflowRegistry
from stepflow.settings import settings

_registry: Optional[WorkflowRegistry] = None


def build_gateway():
    if settings.USE_MOCKS:
        return InMemoryGateway()
    return HttpGateway(settings.GATEWAY_BASE_URL, settings.GATEWAY_TIMEOUT_SEC, api_key=settings.API_KEY)


def get_registry() -> WorkflowRegistry:
    global _registry
    if _registry is None:
        _registry = WorkflowRegistry(build_gateway())
    return _registry


def reset_registry(registry: Optional[WorkflowRegistry] = None) -> None:
    global _registry
    _registry = registry
