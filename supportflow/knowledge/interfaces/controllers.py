"""
Knowledge Controllers (API Routes)
==================================

FastAPI routes for the knowledge library.

Controllers resolve the caller's session and delegate to application
services taken from the application container.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from supportflow.config import settings
from supportflow.core import ServiceUnavailableException, UnauthorizedException
from supportflow.knowledge.application import (
    KnowledgeLibraryService,
    KnowledgeWorker,
    ReindexRequest,
    UploadResponse,
    DocumentInfo,
    DocumentListResponse,
    OkResponse,
    WorkerJobInfo,
    WorkerRunResponse,
    KnowledgeStatsResponse,
)
from supportflow.shared.api.auth import Session, get_current_session, is_authorized_cron, resolve_tenant
from supportflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/knowledge", tags=["Knowledge Library"])


# ========== Dependencies ==========

def get_library_service(request: Request) -> KnowledgeLibraryService:
    """Knowledge library service from the application container."""
    container = getattr(request.app.state, "container", None)
    if container is None or container.library is None:
        raise ServiceUnavailableException("Knowledge library not available")
    return container.library


def get_worker(request: Request) -> KnowledgeWorker:
    """Knowledge worker from the application container."""
    container = getattr(request.app.state, "container", None)
    if container is None or container.worker is None:
        raise ServiceUnavailableException("Knowledge worker not available")
    return container.worker


# ========== Route Handlers ==========

@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a knowledge document",
    description="""
    Upload a file into the knowledge library as multipart form data.

    - **file**: PDF, plain text, markdown or CSV
    - **type**: `policy` | `training` | `platform` (platform is admin-only)
    - **title**: optional display title (defaults to the file name)
    - **tenant_id**: admin-only target tenant

    The document is created in `pending` status and an ingest job is queued.
    """
)
async def upload_document(
    file: UploadFile = File(..., description="Document file"),
    type: str = Form(..., description="policy | training | platform"),
    title: Optional[str] = Form(None),
    tenant_id: Optional[str] = Form(None),
    session: Session = Depends(get_current_session),
    service: KnowledgeLibraryService = Depends(get_library_service)
) -> UploadResponse:
    owner = resolve_tenant(session, tenant_id)
    # One byte past the limit is enough for the service to reject an oversized file
    data = await file.read(service.max_upload_bytes + 1)

    document, job_queued = await service.upload(
        is_admin=session.is_admin,
        tenant_id=owner,
        category=type,
        filename=file.filename or "",
        content_type=file.content_type,
        data=data,
        title=title,
    )
    return UploadResponse(
        document_id=document.id,
        status=document.status,
        job_queued=job_queued,
    )


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List knowledge documents"
)
async def list_documents(
    type: Optional[str] = Query(None, description="Filter by category"),
    tenant_id: Optional[str] = Query(None, description="Admin-only tenant filter"),
    session: Session = Depends(get_current_session),
    service: KnowledgeLibraryService = Depends(get_library_service)
) -> DocumentListResponse:
    documents = await service.list_documents(
        is_admin=session.is_admin,
        tenant_id=resolve_tenant(session, tenant_id),
        category=type,
    )
    return DocumentListResponse(documents=[DocumentInfo.from_domain(d) for d in documents])


@router.delete(
    "/documents/{document_id}",
    response_model=OkResponse,
    summary="Delete a knowledge document"
)
async def delete_document(
    document_id: str,
    session: Session = Depends(get_current_session),
    service: KnowledgeLibraryService = Depends(get_library_service)
) -> OkResponse:
    await service.delete(document_id, is_admin=session.is_admin, tenant_id=session.tenant_id)
    return OkResponse(document_id=document_id)


@router.post(
    "/reindex",
    response_model=OkResponse,
    summary="Re-ingest a knowledge document"
)
async def reindex_document(
    payload: ReindexRequest,
    session: Session = Depends(get_current_session),
    service: KnowledgeLibraryService = Depends(get_library_service)
) -> OkResponse:
    document, job_queued = await service.reindex(
        payload.document_id, is_admin=session.is_admin, tenant_id=session.tenant_id
    )
    return OkResponse(document_id=document.id, job_queued=job_queued)


@router.api_route(
    "/worker",
    methods=["GET", "POST"],
    response_model=WorkerRunResponse,
    summary="Process pending ingest jobs",
    description="""
    Claims and processes up to `worker_max_jobs_per_run` jobs, then returns.

    Intended for a cron trigger. Send the shared secret in the
    `x-cron-secret` header or the `secret` query parameter.
    """
)
async def run_worker(
    request: Request,
    worker: KnowledgeWorker = Depends(get_worker)
) -> WorkerRunResponse:
    if not is_authorized_cron(request, settings):
        raise UnauthorizedException("Unauthorized")

    run = await worker.run_once()
    return WorkerRunResponse(
        processed=run.processed,
        jobs=[
            WorkerJobInfo(
                job_id=o.job_id,
                document_id=o.document_id,
                status=o.status,
                error=o.error,
            )
            for o in run.outcomes
        ],
    )


@router.get(
    "/stats",
    response_model=KnowledgeStatsResponse,
    summary="Knowledge library statistics"
)
async def knowledge_stats(
    tenant_id: Optional[str] = Query(None, description="Admin-only tenant filter"),
    session: Session = Depends(get_current_session),
    service: KnowledgeLibraryService = Depends(get_library_service)
) -> KnowledgeStatsResponse:
    stats = await service.stats(
        is_admin=session.is_admin,
        tenant_id=resolve_tenant(session, tenant_id),
    )
    return KnowledgeStatsResponse(**stats)


knowledge_router = router
