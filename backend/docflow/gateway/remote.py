"""
Remote Operation Executor — calls the external PDF service.

Two protocols are in use:

  Two-step (optimize, extract-text):
    1. POST <pdf api>/documents/upload      multipart "file"  →  {documentId}
    2. POST <pdf api>/documents/<transform> JSON {documentId}  →  {taskId, ...} (202)
    The accepted job descriptor is returned as-is; polling the task to
    completion is the caller's concern.

  One-step multipart (split, merge, protect, convert, sign):
    POST <base>/api/v1/<operation> with the file(s) and operation parameters,
    response body returned verbatim.

Every failure is logged with operation/url/status/body/message and re-raised
as RemoteOperationError carrying the operation name. This class never
fabricates a success result. A failed docgen token exchange is wrapped the
same way, with the AuthError kept as __cause__.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from docflow.gateway.auth_headers import AuthHeaderBuilder
from docflow.gateway.credentials import SurfaceKind
from docflow.gateway.errors import AuthError, RemoteOperationError, RemoteProtocolError

logger = logging.getLogger(__name__)

_MAX_LOGGED_BODY = 500

# Status codes worth another attempt before degrading to the local fallback.
_TRANSIENT_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})

DEFAULT_PERMISSIONS = "print,read"


def _body_for_log(resp: httpx.Response | None) -> str | None:
    if resp is None:
        return None
    if "pdf" in resp.headers.get("content-type", ""):
        return f"<{len(resp.content)} bytes>"
    return resp.text[:_MAX_LOGGED_BODY]


def _parse_body(resp: httpx.Response) -> dict[str, Any]:
    """
    JSON bodies come back as dicts; anything else is passed through as bytes.
    A body that looks like JSON is parsed even when mislabelled (text/plain).
    """
    content_type = resp.headers.get("content-type", "")
    if "json" in content_type:
        data = resp.json()
        return data if isinstance(data, dict) else {"result": data}
    if resp.content.lstrip()[:1] in (b"{", b"["):
        try:
            data = resp.json()
        except ValueError:
            logger.debug("Body looked like JSON but did not parse | content_type=%s", content_type)
        else:
            return data if isinstance(data, dict) else {"result": data}
    return {"contentType": content_type or "application/octet-stream", "content": resp.content}


class RemoteOperationExecutor:

    def __init__(
        self,
        headers:         AuthHeaderBuilder,
        pdf_api_base:    str,
        pdf_base_url:    str,
        docgen_base_url: str,
        timeout:         float = 10.0,
        transport:       httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._headers         = headers
        self._pdf_api_base    = pdf_api_base.rstrip("/")
        self._pdf_base_url    = pdf_base_url.rstrip("/")
        self._docgen_base_url = docgen_base_url.rstrip("/")
        self._timeout         = timeout
        self._transport       = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    @property
    def upload_url(self) -> str:
        return f"{self._pdf_api_base}/documents/upload"

    # -----------------------------------------------------------------------
    # Two-step operations
    # -----------------------------------------------------------------------

    async def optimize(self, payload: bytes) -> dict[str, Any]:
        return await self._upload_and_transform(
            "optimize", payload, "documents/optimize/pdf-linearize", {},
        )

    async def extract_text(self, payload: bytes) -> dict[str, Any]:
        return await self._upload_and_transform(
            "extract-text", payload, "documents/modify/pdf-extract", {"extractType": "TEXT"},
        )

    async def _upload_and_transform(
        self,
        operation: str,
        payload:   bytes,
        transform: str,
        params:    dict[str, Any],
    ) -> dict[str, Any]:
        async with self._client() as http:
            upload = await self._post(
                http, operation, self.upload_url, SurfaceKind.PDF,
                files={"file": ("document.pdf", payload, "application/pdf")},
            )
            document_id = upload.get("documentId")
            if not document_id:
                logger.error("Upload did not return documentId | operation=%s", operation)
                raise RemoteProtocolError(operation, "Upload did not return documentId")

            return await self._post(
                http, operation, f"{self._pdf_api_base}/{transform}", SurfaceKind.PDF,
                json={"documentId": document_id, **params},
            )

    # -----------------------------------------------------------------------
    # One-step multipart operations
    # -----------------------------------------------------------------------

    async def split(self, payload: bytes, pages: Sequence[int]) -> dict[str, Any]:
        return await self._legacy(
            "split", self._pdf_base_url, SurfaceKind.PDF,
            files=[("file", ("document.pdf", payload, "application/pdf"))],
            data={"pages": ",".join(str(p) for p in pages)},
        )

    async def merge(self, payloads: Sequence[bytes]) -> dict[str, Any]:
        return await self._legacy(
            "merge", self._pdf_base_url, SurfaceKind.PDF,
            files=[
                ("files", (f"document_{i}.pdf", buf, "application/pdf"))
                for i, buf in enumerate(payloads)
            ],
        )

    async def protect(
        self, payload: bytes, password: str, permissions: str = DEFAULT_PERMISSIONS,
    ) -> dict[str, Any]:
        return await self._legacy(
            "protect", self._pdf_base_url, SurfaceKind.PDF,
            files=[("file", ("document.pdf", payload, "application/pdf"))],
            data={"password": password, "permissions": permissions},
        )

    async def convert(self, payload: bytes, filename: str) -> dict[str, Any]:
        return await self._legacy(
            "convert", self._docgen_base_url, SurfaceKind.DOCGEN,
            files=[("file", (filename, payload, "application/octet-stream"))],
            data={"outputFormat": "pdf"},
        )

    async def sign(self, payload: bytes, signature: str, page: int = 1) -> dict[str, Any]:
        return await self._legacy(
            "sign", self._pdf_base_url, SurfaceKind.PDF,
            files=[("file", ("document.pdf", payload, "application/pdf"))],
            data={"signature": signature, "page": str(page)},
        )

    async def _legacy(
        self,
        operation: str,
        base_url:  str,
        kind:      SurfaceKind,
        files:     list,
        data:      dict[str, str] | None = None,
    ) -> dict[str, Any]:
        async with self._client() as http:
            return await self._post(
                http, operation, f"{base_url}/api/v1/{operation}", kind,
                files=files, data=data,
            )

    async def probe_upload(self) -> int:
        """OPTIONS the upload endpoint with pdf-surface auth; returns the status code."""
        headers = await self._headers.build(SurfaceKind.PDF)
        async with self._client() as http:
            resp = await http.options(self.upload_url, headers=headers)
        return resp.status_code

    # -----------------------------------------------------------------------
    # Shared POST with uniform error handling
    # -----------------------------------------------------------------------

    async def _post(
        self,
        http:      httpx.AsyncClient,
        operation: str,
        url:       str,
        kind:      SurfaceKind,
        **kwargs:  Any,
    ) -> dict[str, Any]:
        resp: httpx.Response | None = None
        try:
            headers = await self._headers.build(kind)
            resp = await http.post(url, headers=headers, **kwargs)
            resp.raise_for_status()
            return _parse_body(resp)
        except AuthError as exc:
            logger.error(
                "Remote call failed | operation=%s url=%s status=%s body=None message=%s",
                operation, url, exc.status, exc,
            )
            raise RemoteOperationError(
                operation, f"Remote {operation} failed: {exc}", status=exc.status,
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error(
                "Remote call failed | operation=%s url=%s status=%d body=%s message=%s",
                operation, url, status, _body_for_log(exc.response), exc,
            )
            raise RemoteOperationError(
                operation, f"Remote {operation} failed: HTTP {status}",
                status=status, transient=status in _TRANSIENT_STATUSES,
            ) from exc
        except httpx.RequestError as exc:
            # only transport failures (timeouts, connects) are transient
            logger.error(
                "Remote call failed | operation=%s url=%s status=None body=None message=%s",
                operation, url, f"{type(exc).__name__}: {exc}",
            )
            raise RemoteOperationError(
                operation, f"Remote {operation} failed: {type(exc).__name__}",
                transient=isinstance(exc, httpx.TransportError),
            ) from exc
        except ValueError as exc:
            # 2xx with a body that claims JSON but is not
            logger.error(
                "Remote call failed | operation=%s url=%s status=%s body=%s message=%s",
                operation, url, resp.status_code if resp else None, _body_for_log(resp), exc,
            )
            raise RemoteProtocolError(operation, f"Remote {operation} returned invalid JSON") from exc
