"""FastAPI dependencies for shared service objects.

The gateway, wizard registry and tracking service are process-wide and
hang off ``app.state``. The lifespan creates them; they are also built
on first use so the app works under transports that skip lifespan.
"""

from fastapi import Depends, Request

from admissions.services.drafts import get_draft_store  # noqa: F401
from admissions.services.gateway import BackendGateway
from admissions.services.sessions import WizardSessionRegistry
from admissions.services.tracking import TrackingService


async def get_gateway(request: Request) -> BackendGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        gateway = BackendGateway.from_settings()
        request.app.state.gateway = gateway
    return gateway


async def get_registry(request: Request) -> WizardSessionRegistry:
    registry = getattr(request.app.state, "wizard_registry", None)
    if registry is None:
        registry = WizardSessionRegistry()
        request.app.state.wizard_registry = registry
    return registry


async def get_tracking_service(
    request: Request,
    gateway: BackendGateway = Depends(get_gateway),
) -> TrackingService:
    service = getattr(request.app.state, "tracking_service", None)
    if service is None:
        service = TrackingService(gateway)
        request.app.state.tracking_service = service
    return service
