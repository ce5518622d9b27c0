"""
PDF Gateway Package

Integration layer for the external PDF service:
  credentials.py     surface credential sets + bearer token cache
  token_provider.py  OAuth client-credentials exchange (docgen surface)
  auth_headers.py    Basic (pdf) / Bearer (docgen) header strategies
  remote.py          upload → transform and one-step multipart calls
  local.py           PyMuPDF fallbacks for optimize, extract-text, split, protect
  facade.py          PdfGateway: remote first, local on failure, typed errors

Public API::

    from docflow.gateway import get_pdf_gateway

    result = await get_pdf_gateway().extract_text(pdf_bytes)
    result.to_dict()   # {"taskId": ...} or {"text": ..., "note": "local-fallback"}
"""

from docflow.gateway.credentials import CredentialCache, CredentialSet, SurfaceKind
from docflow.gateway.errors import (
    AuthError,
    CompositeFailure,
    LocalFallbackError,
    PdfGatewayError,
    RemoteOperationError,
    RemoteProtocolError,
    SplitError,
)
from docflow.gateway.facade import (
    OperationResult,
    PdfGateway,
    ResultSource,
    RetryPolicy,
    build_gateway,
    get_pdf_gateway,
)

__all__ = [
    "AuthError",
    "CompositeFailure",
    "CredentialCache",
    "CredentialSet",
    "LocalFallbackError",
    "OperationResult",
    "PdfGateway",
    "PdfGatewayError",
    "RemoteOperationError",
    "RemoteProtocolError",
    "ResultSource",
    "RetryPolicy",
    "SplitError",
    "SurfaceKind",
    "build_gateway",
    "get_pdf_gateway",
]
