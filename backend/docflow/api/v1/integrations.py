"""
GET /api/integrations/pdf-service/health

Credential probe for both PDF service surfaces. No auth, no secrets in the
body: only ok flags, HTTP status codes and error messages.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from docflow.gateway.facade import PdfGateway, get_pdf_gateway
from docflow.schemas.documents import IntegrationHealthResponse

router = APIRouter(prefix="/integrations", tags=["Operations"])


@router.get(
    "/pdf-service/health",
    response_model=IntegrationHealthResponse,
    summary="PDF service credential check",
)
async def pdf_service_health(
    gateway: PdfGateway = Depends(get_pdf_gateway),
) -> IntegrationHealthResponse:
    report = await gateway.health()
    return IntegrationHealthResponse(**report)
