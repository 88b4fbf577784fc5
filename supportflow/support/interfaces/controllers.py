"""
Support Controllers (API Routes)
================================

FastAPI routes for the support agent.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from supportflow.core import ApplicationException, ServiceUnavailableException, ValidationException
from supportflow.shared.api.auth import Session, get_current_session, resolve_tenant
from supportflow.shared.infrastructure.logging import get_logger
from supportflow.support.application import (
    AgentConfigInput,
    AgentConfigResponse,
    AgentConfigService,
    GenerateErrorResponse,
    GenerateRequest,
    GenerateResponse,
    SupportAgentService,
    SupportStatsResponse,
    SupportStatsService,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/support", tags=["Support Agent"])


# ========== Dependencies ==========

def _service(request: Request, name: str, label: str):
    container = getattr(request.app.state, "container", None)
    service = getattr(container, name, None) if container is not None else None
    if service is None:
        raise ServiceUnavailableException(f"{label} not available")
    return service


def get_agent_service(request: Request) -> SupportAgentService:
    """Support agent service from the application container."""
    return _service(request, "agent", "Support agent")


def get_config_service(request: Request) -> AgentConfigService:
    """Agent config service from the application container."""
    return _service(request, "agent_configs", "Agent config service")


def get_stats_service(request: Request) -> SupportStatsService:
    """Support statistics service from the application container."""
    return _service(request, "support_stats", "Support statistics")


# ========== Route Handlers ==========

@router.post(
    "/generate",
    response_model=GenerateResponse,
    responses={500: {"model": GenerateErrorResponse}},
    summary="Draft and route a reply to a support ticket",
    description="""
    Runs the deterministic rules first; otherwise retrieves tenant knowledge,
    asks the model for a draft and routes it to `AUTO` or `HUMAN_REVIEW`.

    Every call, including failed ones, is recorded as a support event.
    """
)
async def generate_reply(
    payload: GenerateRequest,
    session: Session = Depends(get_current_session),
    service: SupportAgentService = Depends(get_agent_service)
):
    tenant_id = resolve_tenant(session, payload.tenant_id)
    if not tenant_id:
        raise ValidationException("Missing required field: tenantId")

    request_id = str(uuid.uuid4())
    try:
        reply = await service.generate(payload.to_domain(tenant_id), request_id=request_id)
    except ApplicationException as e:
        # Client-side errors keep their status; everything else is a 500
        status_code = e.status_code if e.status_code < 500 else 500
        return JSONResponse(
            status_code=status_code,
            content={"error": e.message, "request_id": request_id},
        )
    except Exception:
        logger.exception("Ticket generation failed unexpectedly", extra={"request_id": request_id})
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "request_id": request_id},
        )

    return GenerateResponse.from_domain(reply)


@router.get(
    "/agent-config",
    response_model=AgentConfigResponse,
    summary="Get the tenant's agent config"
)
async def get_agent_config(
    tenant_id: Optional[str] = Query(None, description="Admin-only tenant"),
    session: Session = Depends(get_current_session),
    service: AgentConfigService = Depends(get_config_service)
) -> AgentConfigResponse:
    tenant = resolve_tenant(session, tenant_id)
    config, stored = await service.get(tenant)
    return AgentConfigResponse.from_domain(tenant, config, stored)


@router.put(
    "/agent-config",
    response_model=AgentConfigResponse,
    summary="Save the tenant's agent config"
)
async def put_agent_config(
    payload: AgentConfigInput,
    tenant_id: Optional[str] = Query(None, description="Admin-only tenant"),
    session: Session = Depends(get_current_session),
    service: AgentConfigService = Depends(get_config_service)
) -> AgentConfigResponse:
    tenant = resolve_tenant(session, tenant_id)
    config = await service.put(tenant, payload.model_dump())
    return AgentConfigResponse.from_domain(tenant, config, True)


@router.get(
    "/stats",
    response_model=SupportStatsResponse,
    summary="Routing outcome statistics"
)
async def support_stats(
    tenant_id: Optional[str] = Query(None, description="Admin-only tenant filter"),
    session: Session = Depends(get_current_session),
    service: SupportStatsService = Depends(get_stats_service)
) -> SupportStatsResponse:
    stats = await service.stats(
        is_admin=session.is_admin,
        tenant_id=resolve_tenant(session, tenant_id),
    )
    return SupportStatsResponse(**stats)


support_router = router
