"""
PDF Gateway — single entry point per PDF operation.

  ┌──────────────────────────────────────────────────────────┐
  │  PdfGateway.<operation>(payload, params)                 │
  │       │                                                  │
  │       ▼                                                  │
  │  remote branch  → RemoteOperationExecutor (+ RetryPolicy)│
  │       │ Outcome.failed                                   │
  │       ▼                                                  │
  │  local branch   → LocalFallbackExecutor                  │
  │       │ Outcome.failed                                   │
  │       ▼                                                  │
  │  CompositeFailure(remote error, local error)             │
  └──────────────────────────────────────────────────────────┘

Each branch produces an Outcome value; which branch produced the result is
recorded on the OperationResult (`source`), so callers and tests can tell an
authoritative remote result from an approximate local one.

Operations without a local fallback (merge, convert, sign) surface the
remote error unchanged.

Usage::

    gateway = get_pdf_gateway()
    result  = await gateway.optimize(pdf_bytes)
    if result.needs_polling:
        ...  # result.task_id identifies the accepted remote job
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Awaitable, Callable, Sequence

from docflow.gateway.credentials import SurfaceKind
from docflow.gateway.errors import (
    AuthError,
    CompositeFailure,
    RemoteOperationError,
    RemoteProtocolError,
)
from docflow.gateway.local import LocalFallbackExecutor
from docflow.gateway.remote import RemoteOperationExecutor
from docflow.gateway.token_provider import TokenProvider

logger = logging.getLogger(__name__)

LOCAL_FALLBACK_NOTE = "local-fallback"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class ResultSource(str, Enum):
    REMOTE         = "remote"
    LOCAL_FALLBACK = LOCAL_FALLBACK_NOTE


@dataclass(frozen=True)
class Outcome:
    """Either a value or the exception that prevented one."""
    value: Any = None
    error: Exception | None = None

    @classmethod
    def ok(cls, value: Any) -> "Outcome":
        return cls(value=value)

    @classmethod
    def failed(cls, error: Exception) -> "Outcome":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None


@dataclass
class OperationResult:
    """
    Normalized result of a gateway operation.

    Remote results carry the service's job descriptor (conventionally with a
    taskId); local results were completed synchronously and are tagged with
    note="local-fallback" in to_dict().
    """
    operation: str
    source:    ResultSource
    data:      dict[str, Any] = field(default_factory=dict)

    @property
    def is_fallback(self) -> bool:
        return self.source is ResultSource.LOCAL_FALLBACK

    @property
    def task_id(self) -> str | None:
        # opaque; some endpoints answer with a numeric id
        task_id = self.data.get("taskId")
        return str(task_id) if task_id is not None else None

    @property
    def needs_polling(self) -> bool:
        return self.task_id is not None

    @property
    def warnings(self) -> list[str]:
        warning = self.data.get("warning")
        return [warning] if warning else []

    def to_dict(self) -> dict[str, Any]:
        out = dict(self.data)
        if self.is_fallback:
            out["note"] = LOCAL_FALLBACK_NOTE
        return out


@dataclass(frozen=True)
class RetryPolicy:
    """
    Extra remote attempts before degrading to the fallback.
    Only transient failures (timeouts, connection errors, 5xx/429) are retried.
    """
    max_retries:     int   = 0
    backoff_seconds: float = 0.5

    def should_retry(self, exc: Exception, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        if isinstance(exc, (AuthError, RemoteProtocolError)):
            return False
        return isinstance(exc, RemoteOperationError) and exc.transient

    def delay(self, attempt: int) -> float:
        return self.backoff_seconds * (attempt + 1)


# ---------------------------------------------------------------------------
# PdfGateway
# ---------------------------------------------------------------------------

class PdfGateway:

    def __init__(
        self,
        remote:         RemoteOperationExecutor,
        local:          LocalFallbackExecutor | None = None,
        token_provider: TokenProvider | None = None,
        retry:          RetryPolicy | None = None,
    ) -> None:
        self._remote = remote
        self._local  = local or LocalFallbackExecutor()
        self._tokens = token_provider
        self._retry  = retry or RetryPolicy()

    # -----------------------------------------------------------------------
    # Operations with a local fallback
    # -----------------------------------------------------------------------

    async def optimize(self, payload: bytes) -> OperationResult:
        return await self._with_fallback(
            "optimize",
            lambda: self._remote.optimize(payload),
            lambda: self._local.optimize(payload),
        )

    async def extract_text(self, payload: bytes) -> OperationResult:
        return await self._with_fallback(
            "extract-text",
            lambda: self._remote.extract_text(payload),
            lambda: self._local.extract_text(payload),
        )

    async def split(self, payload: bytes, pages: Sequence[int]) -> OperationResult:
        pages = validate_pages(pages)
        return await self._with_fallback(
            "split",
            lambda: self._remote.split(payload, pages),
            lambda: self._local.split(payload, pages),
        )

    async def protect(self, payload: bytes, password: str) -> OperationResult:
        if not password:
            raise ValueError("password is required")

        result = await self._with_fallback(
            "protect",
            lambda: self._remote.protect(payload, password),
            lambda: self._local.protect(payload, password),
        )
        if not result.is_fallback:
            result.data.setdefault("isProtected", True)
        return result

    # -----------------------------------------------------------------------
    # Remote-only operations
    # -----------------------------------------------------------------------

    async def merge(self, payloads: Sequence[bytes]) -> OperationResult:
        if len(payloads) < 2:
            raise ValueError("merge needs at least two documents")
        return await self._remote_only("merge", lambda: self._remote.merge(payloads))

    async def convert(self, payload: bytes, filename: str) -> OperationResult:
        return await self._remote_only("convert", lambda: self._remote.convert(payload, filename))

    async def sign(self, payload: bytes, signature: str, page: int = 1) -> OperationResult:
        if not signature:
            raise ValueError("signature is required")
        if page < 1:
            raise ValueError("page numbers start at 1")
        return await self._remote_only("sign", lambda: self._remote.sign(payload, signature, page))

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------

    async def check_auth(self, kind: SurfaceKind) -> dict[str, Any]:
        """
        Probe credentials for one surface. Reports booleans and status codes
        only; the token and secrets never leave this method.
        """
        try:
            if kind is SurfaceKind.PDF:
                status = await self._remote.probe_upload()
                return {"ok": 200 <= status < 300, "status": status}
            if self._tokens is None:
                return {"ok": False, "error": "token provider not configured"}
            await self._tokens.acquire_token(kind)
            return {"ok": True}
        except Exception as exc:
            status = getattr(exc, "status", None)
            logger.error(
                "PDF service auth check failed | kind=%s status=%s error=%s",
                kind.value, status, type(exc).__name__,
            )
            return {"ok": False, "error": str(exc), "status": status}

    async def health(self) -> dict[str, Any]:
        pdf    = await self.check_auth(SurfaceKind.PDF)
        docgen = await self.check_auth(SurfaceKind.DOCGEN)
        tokens = self._tokens.cache.stats() if self._tokens is not None else {}
        return {
            "ok":     pdf["ok"] and docgen["ok"],
            "pdf":    pdf,
            "docgen": docgen,
            "tokens": tokens,
        }

    # -----------------------------------------------------------------------
    # Branches
    # -----------------------------------------------------------------------

    async def _attempt_remote(
        self, operation: str, call: Callable[[], Awaitable[dict[str, Any]]],
    ) -> Outcome:
        attempt = 0
        while True:
            try:
                return Outcome.ok(await call())
            except Exception as exc:   # any remote failure degrades to the fallback
                if not self._retry.should_retry(exc, attempt):
                    return Outcome.failed(exc)
                delay = self._retry.delay(attempt)
                logger.warning(
                    "PdfGateway | retrying operation=%s attempt=%d delay=%.1fs error=%s",
                    operation, attempt + 1, delay, exc,
                )
                attempt += 1
                await asyncio.sleep(delay)

    @staticmethod
    async def _attempt_local(call: Callable[[], Awaitable[dict[str, Any]]]) -> Outcome:
        try:
            return Outcome.ok(await call())
        except Exception as exc:
            return Outcome.failed(exc)

    async def _with_fallback(
        self,
        operation:   str,
        remote_call: Callable[[], Awaitable[dict[str, Any]]],
        local_call:  Callable[[], Awaitable[dict[str, Any]]],
    ) -> OperationResult:
        remote = await self._attempt_remote(operation, remote_call)
        if remote.is_ok:
            return OperationResult(operation, ResultSource.REMOTE, remote.value)

        logger.warning(
            "PdfGateway | remote failed, using local fallback | operation=%s error=%s",
            operation, remote.error,
        )
        local = await self._attempt_local(local_call)
        if local.is_ok:
            return OperationResult(operation, ResultSource.LOCAL_FALLBACK, local.value)

        logger.error(
            "PdfGateway | remote and local both failed | operation=%s remote=%s local=%s",
            operation, remote.error, local.error,
        )
        raise CompositeFailure(operation, remote.error, local.error)

    async def _remote_only(
        self, operation: str, remote_call: Callable[[], Awaitable[dict[str, Any]]],
    ) -> OperationResult:
        remote = await self._attempt_remote(operation, remote_call)
        if not remote.is_ok:
            raise remote.error
        return OperationResult(operation, ResultSource.REMOTE, remote.value)


def validate_pages(pages: Sequence[int]) -> list[int]:
    """Split pages are 1-indexed positive integers; at least one is required."""
    pages = list(pages)
    if not pages:
        raise ValueError("at least one page is required")
    for page in pages:
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise ValueError(f"invalid page number: {page!r}")
    return pages


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_gateway(settings=None, transport=None) -> PdfGateway:
    """Assemble a PdfGateway from application settings."""
    from docflow.core.config import settings as app_settings
    from docflow.gateway.auth_headers import AuthHeaderBuilder

    cfg = settings or app_settings
    credentials = {kind: cfg.credentials(kind) for kind in SurfaceKind}

    tokens = TokenProvider(
        token_url=cfg.oauth_token_url,
        credentials=credentials,
        timeout=cfg.pdf_service_timeout_seconds,
        transport=transport,
    )
    remote = RemoteOperationExecutor(
        headers=AuthHeaderBuilder(credentials, tokens),
        pdf_api_base=cfg.pdf_api_base,
        pdf_base_url=cfg.pdf_base_url,
        docgen_base_url=cfg.docgen_base_url,
        timeout=cfg.pdf_service_timeout_seconds,
        transport=transport,
    )
    return PdfGateway(
        remote=remote,
        local=LocalFallbackExecutor(),
        token_provider=tokens,
        retry=RetryPolicy(
            max_retries=cfg.pdf_service_max_retries,
            backoff_seconds=cfg.pdf_service_retry_backoff_seconds,
        ),
    )


@lru_cache(maxsize=1)
def get_pdf_gateway() -> PdfGateway:
    """Process-wide gateway. The credential cache lives as long as this instance."""
    return build_gateway()
