"""
PDF Operation API — Pydantic Request/Response Schemas

Every response carries a `success` flag and a message. Successful operation
bodies put the gateway's normalized result under `data`:

  remote path          data = {"taskId": ..., ...}        (poll downstream)
  local fallback path  data = {..., "note": "local-fallback"}

The note is the only signal that the remote provider was unavailable and the
result is approximate; it is passed through untouched.
"""

from __future__ import annotations

import base64
from typing import Any

from pydantic import BaseModel, Field

from docflow.gateway.facade import OperationResult


PDF_MAGIC_BYTES = b"%PDF"


# ---------------------------------------------------------------------------
# Success envelopes
# ---------------------------------------------------------------------------

class OperationResponse(BaseModel):
    success:   bool            = True
    message:   str
    operation: str
    source:    str             = Field(..., description="remote | local-fallback")
    task_id:   str | None      = Field(None, description="Remote job id when polling is needed")
    warnings:  list[str]       = Field(default_factory=list)
    data:      dict[str, Any]  = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: OperationResult, message: str) -> "OperationResponse":
        return cls(
            message=message,
            operation=result.operation,
            source=result.source.value,
            task_id=result.task_id,
            warnings=result.warnings,
            data=_json_safe(result.to_dict()),
        )


class SurfaceHealth(BaseModel):
    ok:     bool
    status: int | None = None
    error:  str | None = None


class TokenCacheStats(BaseModel):
    fresh:         bool
    ttl_remaining: int = Field(..., description="Seconds until the cached token expires")


class IntegrationHealthResponse(BaseModel):
    success: bool = True
    ok:      bool
    pdf:     SurfaceHealth
    docgen:  SurfaceHealth
    tokens:  dict[str, TokenCacheStats] = Field(
        default_factory=dict, description="Cached bearer tokens per surface (never the token itself)",
    )


def _json_safe(value: Any) -> Any:
    """Binary buffers (split pages, raw remote bodies) are base64-encoded."""
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if key == "buffer" and isinstance(item, (bytes, bytearray)):
                out["content"] = _json_safe(item)
                out["size"]    = len(item)
            else:
                out[key] = _json_safe(item)
        return out
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    success:    bool              = False
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


class OperationErrors:
    """Factories for every documented error case."""

    @staticmethod
    def missing_file(field: str = "file") -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="No document was provided in the request.",
            details=[ErrorDetail(
                field=field,
                message=f"Send the '{field}' multipart field or a 'file_url' form field.",
                code="MISSING_FILE",
            )],
        )

    @staticmethod
    def not_a_pdf(filename: str | None) -> ErrorResponse:
        return ErrorResponse(
            error_code="UNSUPPORTED_FILE_TYPE",
            message="This operation only accepts PDF documents.",
            details=[ErrorDetail(
                field="file",
                message=f"'{filename or 'upload'}' does not start with a PDF header.",
                code="UNSUPPORTED_FILE_TYPE",
            )],
        )

    @staticmethod
    def file_too_large(size_bytes: int, limit: int) -> ErrorResponse:
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {limit // (1024 * 1024)} MB limit.",
            details=[ErrorDetail(
                field="file",
                message=f"Received {size_bytes:,} bytes; limit is {limit:,} bytes.",
                code="FILE_TOO_LARGE",
            )],
        )

    @staticmethod
    def invalid_request(message: str, field: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INVALID_REQUEST",
            message=message,
            details=[ErrorDetail(field=field, message=message, code="INVALID_REQUEST")],
        )

    @staticmethod
    def document_not_found(file_url: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="DOCUMENT_NOT_FOUND",
            message=f"Document '{file_url}' was not found.",
        )

    @staticmethod
    def operation_failed(operation: str, remote: str, local: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="PDF_OPERATION_FAILED",
            message=f"Failed to {operation} PDF.",
            details=[
                ErrorDetail(field=None, message=f"remote: {remote}", code="REMOTE_OPERATION_FAILED"),
                ErrorDetail(field=None, message=f"local fallback: {local}", code="LOCAL_FALLBACK_FAILED"),
            ],
        )

    @staticmethod
    def remote_failed(operation: str, message: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="REMOTE_OPERATION_FAILED",
            message=f"Failed to {operation} document.",
            details=[ErrorDetail(field=None, message=message, code="REMOTE_OPERATION_FAILED")],
        )

    @staticmethod
    def upstream_auth_failed() -> ErrorResponse:
        return ErrorResponse(
            error_code="UPSTREAM_AUTH_FAILED",
            message="Could not authenticate with the PDF service.",
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred. Our team has been notified.",
            request_id=request_id,
        )


# ---------------------------------------------------------------------------
# HTTP status code → error code mapping (for OpenAPI documentation)
# ---------------------------------------------------------------------------

HTTP_ERROR_MAP: dict[int, tuple[str, ...]] = {
    400: ("MISSING_FILE", "UNSUPPORTED_FILE_TYPE", "INVALID_REQUEST"),
    404: ("DOCUMENT_NOT_FOUND",),                # file_url not in upload dir
    413: ("FILE_TOO_LARGE",),                    # body exceeds max_upload_bytes
    422: ("VALIDATION_ERROR",),                  # FastAPI Pydantic validation failure
    500: ("INTERNAL_ERROR",),                    # unhandled exception
    502: ("PDF_OPERATION_FAILED", "REMOTE_OPERATION_FAILED", "UPSTREAM_AUTH_FAILED"),
}
