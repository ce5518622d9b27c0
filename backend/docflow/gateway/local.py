"""
Local Fallback Executor — best-effort in-process PDF operations.

Used only after the remote path has failed. Runs PyMuPDF in the default
thread executor so the event loop is never blocked, and makes no network
calls.

Known approximations:
  optimize  re-serializes with garbage collection, deflate and object
            streams. This is not linearization; the size reduction will
            not match the remote optimizer.
  protect   re-saves the document WITHOUT encryption. The result only
            tells the caller which password was requested; the bytes are
            not protected. Callers must surface the warning.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence

from docflow.gateway.errors import LocalFallbackError, PdfGatewayError, SplitError

logger = logging.getLogger(__name__)

PROTECT_WARNING = (
    "Remote protection unavailable: the document was re-saved locally WITHOUT "
    "encryption. It is not password protected."
)


def _open(payload: bytes):
    import fitz  # PyMuPDF; imported here to avoid module-level import cost

    if not payload:
        raise ValueError("empty document")
    return fitz.open(stream=payload, filetype="pdf")


class LocalFallbackExecutor:

    async def _run(self, operation: str, fn: Callable[..., dict[str, Any]], *args: Any) -> dict[str, Any]:
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except PdfGatewayError:
            raise
        except Exception as exc:
            logger.warning("Local fallback failed | operation=%s error=%s", operation, exc)
            raise LocalFallbackError(operation, f"Local {operation} failed: {exc}") from exc

    # -----------------------------------------------------------------------
    # optimize
    # -----------------------------------------------------------------------

    async def optimize(self, payload: bytes) -> dict[str, Any]:
        return await self._run("optimize", self._optimize_sync, payload)

    def _optimize_sync(self, payload: bytes) -> dict[str, Any]:
        with _open(payload) as doc:
            optimized = doc.tobytes(garbage=3, deflate=True, use_objstms=1)
        return {"beforeSize": len(payload), "afterSize": len(optimized)}

    # -----------------------------------------------------------------------
    # extract-text
    # -----------------------------------------------------------------------

    async def extract_text(self, payload: bytes) -> dict[str, Any]:
        return await self._run("extract-text", self._extract_text_sync, payload)

    def _extract_text_sync(self, payload: bytes) -> dict[str, Any]:
        with _open(payload) as doc:
            text = "\n".join(page.get_text("text") or "" for page in doc)
        return {"text": text}

    # -----------------------------------------------------------------------
    # split
    # -----------------------------------------------------------------------

    async def split(self, payload: bytes, pages: Sequence[int]) -> dict[str, Any]:
        return await self._run("split", self._split_sync, payload, list(pages))

    def _split_sync(self, payload: bytes, pages: list[int]) -> dict[str, Any]:
        """One single-page document per requested page. All or nothing."""
        import fitz

        try:
            src = _open(payload)
        except Exception as exc:
            raise SplitError(f"Local split failed: {exc}") from exc

        files: list[dict[str, Any]] = []
        with src:
            for page in pages:
                index = page - 1   # caller pages are 1-indexed
                if index < 0 or index >= src.page_count:
                    raise SplitError(
                        f"Local split failed: page {page} out of range (1-{src.page_count})"
                    )
                try:
                    with fitz.open() as target:
                        target.insert_pdf(src, from_page=index, to_page=index)
                        files.append({"page": page, "buffer": target.tobytes()})
                except Exception as exc:
                    raise SplitError(f"Local split failed on page {page}: {exc}") from exc

        return {"files": files}

    # -----------------------------------------------------------------------
    # protect (placeholder: no encryption)
    # -----------------------------------------------------------------------

    async def protect(self, payload: bytes, password: str) -> dict[str, Any]:
        return await self._run("protect", self._protect_sync, payload, password)

    def _protect_sync(self, payload: bytes, password: str) -> dict[str, Any]:
        with _open(payload) as doc:
            doc.tobytes(garbage=1, deflate=True, use_objstms=1)
        logger.warning("Local protect fallback | document re-saved WITHOUT encryption")
        return {
            "password":    password,
            "isProtected": False,
            "warning":     PROTECT_WARNING,
        }
