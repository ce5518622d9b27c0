"""
PDF Operation API Router
POST /api/documents/{optimize|extract-text|split|merge|protect|convert|sign}

Each route:
  1. Verifies the caller's JWT (get_current_user)
  2. Loads the document bytes — multipart `file`, or `file_url` pointing into
     the upload directory
  3. Calls the matching PdfGateway operation
  4. Returns {success, message, operation, source, task_id, warnings, data}

Gateway errors (CompositeFailure, RemoteOperationError, AuthError) are mapped
to structured 502 bodies by the exception handlers in docflow.main.
"""

from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import JSONResponse

from docflow.auth.token import CurrentUser
from docflow.core.config import settings
from docflow.gateway.facade import OperationResult, PdfGateway, get_pdf_gateway
from docflow.schemas.documents import (
    HTTP_ERROR_MAP,
    PDF_MAGIC_BYTES,
    ErrorResponse,
    OperationErrors,
    OperationResponse,
)
from docflow.storage.local import DocumentNotFoundError, UploadDirectory, get_upload_directory

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["PDF Operations"],
)

Gateway = Annotated[PdfGateway, Depends(get_pdf_gateway)]
Uploads = Annotated[UploadDirectory, Depends(get_upload_directory)]

_ERROR_DESCRIPTIONS = {
    400: "Missing document, not a PDF, or bad parameters",
    404: "file_url not found in the upload directory",
    413: "File exceeds the upload limit",
    502: "PDF service (and fallback) failed",
}

_ERROR_RESPONSES: dict[int | str, dict] = {
    401: {"description": "Missing or invalid JWT (FastAPI `detail` body)"},
    **{
        code: {
            "model":       ErrorResponse,
            "description": f"{text}. error_code: {', '.join(HTTP_ERROR_MAP[code])}",
        }
        for code, text in _ERROR_DESCRIPTIONS.items()
    },
}


class _RequestRejected(Exception):
    """Short-circuits a route with a prepared error body."""

    def __init__(self, status_code: int, body: ErrorResponse) -> None:
        self.status_code = status_code
        self.body = body


def _reject(exc: _RequestRejected) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.body.model_dump(mode="json"))


def _check_size(size: int) -> None:
    if size > settings.max_upload_bytes:
        raise _RequestRejected(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            OperationErrors.file_too_large(size, settings.max_upload_bytes),
        )


async def _read_upload(upload: UploadFile, require_pdf: bool = True) -> bytes:
    payload = await upload.read()
    if not payload:
        raise _RequestRejected(status.HTTP_400_BAD_REQUEST, OperationErrors.missing_file())
    _check_size(len(payload))
    if require_pdf and not payload.startswith(PDF_MAGIC_BYTES):
        raise _RequestRejected(status.HTTP_400_BAD_REQUEST, OperationErrors.not_a_pdf(upload.filename))
    return payload


async def _load_document(
    file:     UploadFile | None,
    file_url: str | None,
    uploads:  UploadDirectory,
) -> bytes:
    if file is not None:
        return await _read_upload(file)
    if not file_url:
        raise _RequestRejected(status.HTTP_400_BAD_REQUEST, OperationErrors.missing_file())
    try:
        payload = uploads.read(file_url)
    except DocumentNotFoundError:
        raise _RequestRejected(status.HTTP_404_NOT_FOUND, OperationErrors.document_not_found(file_url))
    _check_size(len(payload))
    if not payload.startswith(PDF_MAGIC_BYTES):
        raise _RequestRejected(status.HTTP_400_BAD_REQUEST, OperationErrors.not_a_pdf(file_url))
    return payload


def _parse_pages(raw: str) -> list[int]:
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise _RequestRejected(
            status.HTTP_400_BAD_REQUEST,
            OperationErrors.invalid_request(
                "pages must be a comma-separated list of page numbers, e.g. '1,3'", field="pages",
            ),
        )


def _respond(result: OperationResult, message: str, user_id: str) -> JSONResponse:
    logger.info(
        "PDF operation | operation=%s source=%s task_id=%s user=%s",
        result.operation, result.source.value, result.task_id or "-", user_id,
    )
    body = OperationResponse.from_result(result, message)
    return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(mode="json"))


def _bad_request(exc: ValueError) -> JSONResponse:
    body = OperationErrors.invalid_request(str(exc))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Operations with a local fallback
# ---------------------------------------------------------------------------

@router.post(
    "/optimize",
    response_model=OperationResponse,
    summary="Optimize (linearize) a PDF",
    responses=_ERROR_RESPONSES,
)
async def optimize_document(
    user:     CurrentUser,
    gateway:  Gateway,
    uploads:  Uploads,
    file:     Optional[UploadFile] = File(None),
    file_url: Optional[str]        = Form(None),
) -> JSONResponse:
    try:
        payload = await _load_document(file, file_url, uploads)
    except _RequestRejected as exc:
        return _reject(exc)
    result = await gateway.optimize(payload)
    return _respond(result, "Document optimized successfully", user.id)


@router.post(
    "/extract-text",
    response_model=OperationResponse,
    summary="Extract text from a PDF",
    responses=_ERROR_RESPONSES,
)
async def extract_text(
    user:     CurrentUser,
    gateway:  Gateway,
    uploads:  Uploads,
    file:     Optional[UploadFile] = File(None),
    file_url: Optional[str]        = Form(None),
) -> JSONResponse:
    try:
        payload = await _load_document(file, file_url, uploads)
    except _RequestRejected as exc:
        return _reject(exc)
    result = await gateway.extract_text(payload)
    return _respond(result, "Text extracted successfully", user.id)


@router.post(
    "/split",
    response_model=OperationResponse,
    summary="Split a PDF into single pages",
    description="`pages` is a comma-separated list of 1-indexed page numbers.",
    responses=_ERROR_RESPONSES,
)
async def split_document(
    user:     CurrentUser,
    gateway:  Gateway,
    uploads:  Uploads,
    pages:    str                  = Form(..., min_length=1),
    file:     Optional[UploadFile] = File(None),
    file_url: Optional[str]        = Form(None),
) -> JSONResponse:
    try:
        page_list = _parse_pages(pages)
        payload   = await _load_document(file, file_url, uploads)
    except _RequestRejected as exc:
        return _reject(exc)
    try:
        result = await gateway.split(payload, page_list)
    except ValueError as exc:
        return _bad_request(exc)
    return _respond(result, "Document split successfully", user.id)


@router.post(
    "/protect",
    response_model=OperationResponse,
    summary="Password-protect a PDF",
    description=(
        "When the PDF service is unavailable the local fallback does NOT encrypt "
        "the document; the response then has note='local-fallback', "
        "data.isProtected=false and a warning."
    ),
    responses=_ERROR_RESPONSES,
)
async def protect_document(
    user:     CurrentUser,
    gateway:  Gateway,
    uploads:  Uploads,
    password: str                  = Form(..., min_length=1),
    file:     Optional[UploadFile] = File(None),
    file_url: Optional[str]        = Form(None),
) -> JSONResponse:
    try:
        payload = await _load_document(file, file_url, uploads)
    except _RequestRejected as exc:
        return _reject(exc)
    result = await gateway.protect(payload, password)
    message = (
        "Document NOT protected: PDF service unavailable"
        if result.is_fallback
        else "Document protected successfully"
    )
    return _respond(result, message, user.id)


# ---------------------------------------------------------------------------
# Remote-only operations
# ---------------------------------------------------------------------------

@router.post(
    "/merge",
    response_model=OperationResponse,
    summary="Merge two or more PDFs",
    responses=_ERROR_RESPONSES,
)
async def merge_documents(
    user:    CurrentUser,
    gateway: Gateway,
    files:   list[UploadFile] = File(...),
) -> JSONResponse:
    try:
        payloads = [await _read_upload(f) for f in files]
    except _RequestRejected as exc:
        return _reject(exc)
    try:
        result = await gateway.merge(payloads)
    except ValueError as exc:
        return _bad_request(exc)
    return _respond(result, "Documents merged successfully", user.id)


@router.post(
    "/convert",
    response_model=OperationResponse,
    summary="Convert a document to PDF",
    responses=_ERROR_RESPONSES,
)
async def convert_document(
    user:    CurrentUser,
    gateway: Gateway,
    file:    UploadFile = File(...),
) -> JSONResponse:
    try:
        payload = await _read_upload(file, require_pdf=False)
    except _RequestRejected as exc:
        return _reject(exc)
    result = await gateway.convert(payload, file.filename or "document")
    return _respond(result, "Document converted successfully", user.id)


@router.post(
    "/sign",
    response_model=OperationResponse,
    summary="Sign a PDF",
    responses=_ERROR_RESPONSES,
)
async def sign_document(
    user:      CurrentUser,
    gateway:   Gateway,
    uploads:   Uploads,
    signature: str                  = Form(..., min_length=1),
    page:      int                  = Form(1),
    file:      Optional[UploadFile] = File(None),
    file_url:  Optional[str]        = Form(None),
) -> JSONResponse:
    try:
        payload = await _load_document(file, file_url, uploads)
    except _RequestRejected as exc:
        return _reject(exc)
    try:
        result = await gateway.sign(payload, signature, page)
    except ValueError as exc:
        return _bad_request(exc)
    return _respond(result, "Document signed successfully", user.id)
