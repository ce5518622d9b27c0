"""
Unit Tests — PdfGateway facade
═══════════════════════════════
Tests for:
  • Remote-first with local fallback (optimize, extract-text, split, protect)
  • CompositeFailure when both branches fail
  • Remote-only operations (merge, convert, sign) surfacing the remote error
  • RetryPolicy: transient failures retried, permanent ones not
  • check_auth / health: booleans and statuses only, never secrets

The gateway is built with build_gateway() against FakePdfService, so the
full wiring (settings → token provider → headers → executors) is exercised.
"""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from docflow.gateway.credentials import SurfaceKind
from docflow.gateway.errors import (
    AuthError,
    CompositeFailure,
    RemoteOperationError,
    RemoteProtocolError,
    SplitError,
)
from docflow.gateway.facade import (
    LOCAL_FALLBACK_NOTE,
    OperationResult,
    ResultSource,
    RetryPolicy,
    validate_pages,
)
from tests.conftest import (
    DOCGEN_BASE_URL,
    DOCGEN_CLIENT_SECRET,
    PDF_API_BASE,
    PDF_BASE_URL,
    PDF_CLIENT_ID,
    PDF_CLIENT_SECRET,
    TOKEN_URL,
)

UPLOAD_URL   = f"{PDF_API_BASE}/documents/upload"
OPTIMIZE_URL = f"{PDF_API_BASE}/documents/optimize/pdf-linearize"
EXTRACT_URL  = f"{PDF_API_BASE}/documents/modify/pdf-extract"


# ─────────────────────────────────────────────────────────────────────────────
# Fallback operations
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.gateway
class TestFallbackOperations:

    async def test_remote_success_is_not_fallback(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.accept_two_step("optimize/pdf-linearize", task_id="t-1")

        result = await make_gateway().optimize(sample_pdf_bytes)

        assert result.source is ResultSource.REMOTE
        assert result.task_id == "t-1"
        assert result.needs_polling
        assert "note" not in result.to_dict()

    async def test_upload_ok_transform_fails_falls_back(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.on("POST", UPLOAD_URL, httpx.Response(200, json={"documentId": "d-1"}))
        fake_service.on("POST", EXTRACT_URL, httpx.Response(500))

        result = await make_gateway().extract_text(sample_pdf_bytes)

        assert result.is_fallback
        assert "Marker page 1" in result.data["text"]
        assert result.to_dict()["note"] == LOCAL_FALLBACK_NOTE
        assert not result.needs_polling

    async def test_missing_document_id_falls_back(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.on("POST", UPLOAD_URL, httpx.Response(200, json={}))

        result = await make_gateway().optimize(sample_pdf_bytes)

        assert result.is_fallback
        assert result.data["beforeSize"] == len(sample_pdf_bytes)

    async def test_network_error_falls_back(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.on("POST", f"{PDF_BASE_URL}/api/v1/split", httpx.ConnectError("refused"))

        result = await make_gateway().split(sample_pdf_bytes, [2, 4])

        assert result.is_fallback
        assert [f["page"] for f in result.data["files"]] == [2, 4]

    async def test_composite_failure_names_both_errors(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.on("POST", f"{PDF_BASE_URL}/api/v1/split", httpx.Response(503))

        with pytest.raises(CompositeFailure) as exc_info:
            await make_gateway().split(sample_pdf_bytes, [9])

        err = exc_info.value
        assert err.operation == "split"
        assert isinstance(err.remote_error, RemoteOperationError)
        assert isinstance(err.local_error, SplitError)
        assert "HTTP 503" in str(err)
        assert "out of range" in str(err)

    async def test_composite_failure_for_unreadable_document(self, make_gateway, fake_service):
        fake_service.on("POST", UPLOAD_URL, httpx.Response(500))

        with pytest.raises(CompositeFailure) as exc_info:
            await make_gateway().extract_text(b"not a pdf at all")

        assert str(exc_info.value).startswith("extract-text failed: remote: ")

    async def test_remote_protect_marked_protected(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.on("POST", f"{PDF_BASE_URL}/api/v1/protect", httpx.Response(200, json={"taskId": "p-1"}))

        result = await make_gateway().protect(sample_pdf_bytes, "pw")

        assert result.source is ResultSource.REMOTE
        assert result.data["isProtected"] is True
        assert result.warnings == []

    async def test_local_protect_flagged_unprotected(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.on("POST", f"{PDF_BASE_URL}/api/v1/protect", httpx.Response(500))

        result = await make_gateway().protect(sample_pdf_bytes, "pw")

        assert result.is_fallback
        assert result.data["isProtected"] is False
        assert len(result.warnings) == 1

    async def test_protect_requires_password(self, make_gateway, sample_pdf_bytes):
        with pytest.raises(ValueError, match="password"):
            await make_gateway().protect(sample_pdf_bytes, "")

    async def test_invalid_pages_rejected_before_any_call(self, make_gateway, fake_service, sample_pdf_bytes):
        with pytest.raises(ValueError):
            await make_gateway().split(sample_pdf_bytes, [])
        assert fake_service.requests == []


# ─────────────────────────────────────────────────────────────────────────────
# Remote-only operations
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.gateway
class TestRemoteOnlyOperations:

    async def test_merge_surfaces_remote_error(self, make_gateway, fake_service, make_pdf):
        fake_service.on("POST", f"{PDF_BASE_URL}/api/v1/merge", httpx.Response(500))

        with pytest.raises(RemoteOperationError) as exc_info:
            await make_gateway().merge([make_pdf(["a"]), make_pdf(["b"])])

        assert not isinstance(exc_info.value, CompositeFailure)
        assert exc_info.value.operation == "merge"

    async def test_merge_needs_two_documents(self, make_gateway, make_pdf):
        with pytest.raises(ValueError, match="at least two"):
            await make_gateway().merge([make_pdf(["only"])])

    async def test_convert_success(self, make_gateway, fake_service):
        fake_service.grant_tokens()
        fake_service.on("POST", f"{DOCGEN_BASE_URL}/api/v1/convert", httpx.Response(200, json={"taskId": "c-9"}))

        result = await make_gateway().convert(b"hello", "hello.txt")

        assert result.source is ResultSource.REMOTE
        assert result.task_id == "c-9"

    async def test_numeric_task_id_coerced_to_string(self, make_gateway, fake_service, make_pdf):
        fake_service.on("POST", f"{PDF_BASE_URL}/api/v1/merge", httpx.Response(200, json={"taskId": 12345}))

        result = await make_gateway().merge([make_pdf(["a"]), make_pdf(["b"])])

        assert result.task_id == "12345"
        assert result.needs_polling
        assert result.data["taskId"] == 12345

    async def test_convert_auth_failure_surfaces_remote_error(self, make_gateway, fake_service):
        fake_service.on("POST", TOKEN_URL, httpx.Response(200, json={}))

        with pytest.raises(RemoteOperationError, match="Failed to obtain access token") as exc_info:
            await make_gateway().convert(b"hello", "hello.txt")

        assert exc_info.value.operation == "convert"
        assert isinstance(exc_info.value.__cause__, AuthError)

    async def test_sign_validates_arguments(self, make_gateway, sample_pdf_bytes):
        gateway = make_gateway()
        with pytest.raises(ValueError, match="signature"):
            await gateway.sign(sample_pdf_bytes, "")
        with pytest.raises(ValueError, match="page"):
            await gateway.sign(sample_pdf_bytes, "J. Doe", page=0)

    async def test_sign_surfaces_remote_error(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.on("POST", f"{PDF_BASE_URL}/api/v1/sign", httpx.Response(404))

        with pytest.raises(RemoteOperationError, match="HTTP 404"):
            await make_gateway().sign(sample_pdf_bytes, "J. Doe")


# ─────────────────────────────────────────────────────────────────────────────
# Retry policy
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.gateway
class TestRetryPolicy:

    def test_policy_decisions(self):
        policy = RetryPolicy(max_retries=2, backoff_seconds=0.5)

        assert policy.should_retry(RemoteOperationError("x", status=503, transient=True), 0)
        assert policy.should_retry(RemoteOperationError("x", status=503, transient=True), 1)
        assert not policy.should_retry(RemoteOperationError("x", status=503, transient=True), 2)
        assert not policy.should_retry(RemoteOperationError("x", status=400), 0)
        assert not policy.should_retry(RemoteProtocolError("x", transient=True), 0)
        assert not policy.should_retry(AuthError("docgen", "nope"), 0)
        assert not policy.should_retry(RuntimeError("boom"), 0)
        assert policy.delay(0) == 0.5
        assert policy.delay(2) == 1.5

    def test_default_policy_never_retries(self):
        assert not RetryPolicy().should_retry(RemoteOperationError("x", transient=True), 0)

    async def test_transient_failure_retried_then_succeeds(self, make_gateway, fake_service, sample_pdf_bytes):
        responses = iter([httpx.Response(503), httpx.Response(200, json={"taskId": "s-2"})])
        url = f"{PDF_BASE_URL}/api/v1/split"
        fake_service.on("POST", url, lambda request: next(responses))

        gateway = make_gateway(pdf_service_max_retries=1, pdf_service_retry_backoff_seconds=0.0)
        result  = await gateway.split(sample_pdf_bytes, [1])

        assert result.source is ResultSource.REMOTE
        assert result.task_id == "s-2"
        assert len(fake_service.calls("POST", url)) == 2

    async def test_permanent_failure_not_retried(self, make_gateway, fake_service, sample_pdf_bytes):
        url = f"{PDF_BASE_URL}/api/v1/split"
        fake_service.on("POST", url, httpx.Response(400))

        gateway = make_gateway(pdf_service_max_retries=3, pdf_service_retry_backoff_seconds=0.0)
        result  = await gateway.split(sample_pdf_bytes, [1])

        assert result.is_fallback
        assert len(fake_service.calls("POST", url)) == 1

    async def test_retry_waits_backoff(self, make_gateway, fake_service, sample_pdf_bytes):
        fake_service.on("POST", f"{PDF_BASE_URL}/api/v1/split", httpx.Response(502))
        gateway = make_gateway(pdf_service_max_retries=2, pdf_service_retry_backoff_seconds=0.25)

        with patch("docflow.gateway.facade.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await gateway.split(sample_pdf_bytes, [1])

        assert result.is_fallback
        assert [c.args[0] for c in sleep.await_args_list] == [0.25, 0.5]


# ─────────────────────────────────────────────────────────────────────────────
# check_auth / health
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.gateway
class TestHealth:

    async def test_healthy_when_both_surfaces_ok(self, make_gateway, fake_service):
        fake_service.on("OPTIONS", UPLOAD_URL, httpx.Response(200))
        fake_service.grant_tokens("tok-health")

        report = await make_gateway().health()

        assert report["ok"] is True
        assert report["pdf"] == {"ok": True, "status": 200}
        assert report["docgen"] == {"ok": True}
        assert report["tokens"]["docgen"]["fresh"] is True
        assert 3500 < report["tokens"]["docgen"]["ttl_remaining"] <= 3600
        assert "tok-health" not in repr(report)

    async def test_pdf_rejected_credentials(self, make_gateway, fake_service):
        fake_service.on("OPTIONS", UPLOAD_URL, httpx.Response(401))
        fake_service.grant_tokens()

        report = await make_gateway().health()

        assert report["ok"] is False
        assert report["pdf"] == {"ok": False, "status": 401}
        assert report["docgen"]["ok"] is True

    async def test_docgen_failure_reports_error_without_secrets(self, make_gateway, fake_service):
        fake_service.on("OPTIONS", UPLOAD_URL, httpx.Response(200))
        fake_service.on("POST", TOKEN_URL, httpx.Response(401, json={"error": "invalid_client"}))

        report = await make_gateway().health()

        assert report["ok"] is False
        assert report["docgen"]["ok"] is False
        assert report["docgen"]["status"] == 401
        assert "docgen auth failed" in report["docgen"]["error"]
        assert DOCGEN_CLIENT_SECRET not in repr(report)
        assert PDF_CLIENT_SECRET not in repr(report)

    async def test_check_auth_never_returns_token(self, make_gateway, fake_service):
        fake_service.grant_tokens("very-secret-bearer")

        result = await make_gateway().check_auth(SurfaceKind.DOCGEN)

        assert result == {"ok": True}
        assert "very-secret-bearer" not in repr(result)

    async def test_pdf_probe_network_error(self, make_gateway, fake_service):
        fake_service.on("OPTIONS", UPLOAD_URL, httpx.ConnectError("unreachable"))

        result = await make_gateway().check_auth(SurfaceKind.PDF)

        assert result["ok"] is False
        assert result["status"] is None
        assert "unreachable" in result["error"]

    @pytest.mark.parametrize("succeed", [True, False])
    async def test_check_auth_logs_carry_no_credentials(self, make_gateway, fake_service, caplog, succeed):
        if succeed:
            fake_service.on("OPTIONS", UPLOAD_URL, httpx.Response(200))
            fake_service.grant_tokens("logged-bearer-value")
        else:
            fake_service.on("OPTIONS", UPLOAD_URL, httpx.Response(401))
            fake_service.on("POST", TOKEN_URL, httpx.Response(401, json={"error": "invalid_client"}))

        with caplog.at_level("DEBUG"):
            gateway = make_gateway()
            await gateway.check_auth(SurfaceKind.PDF)
            await gateway.check_auth(SurfaceKind.DOCGEN)

        assert caplog.records
        forbidden = [
            PDF_CLIENT_SECRET,
            DOCGEN_CLIENT_SECRET,
            base64.b64encode(f"{PDF_CLIENT_ID}:{PDF_CLIENT_SECRET}".encode()).decode(),
            "logged-bearer-value",
        ]
        for record in caplog.records:
            message = record.getMessage()
            for value in forbidden:
                assert value not in message


# ─────────────────────────────────────────────────────────────────────────────
# Value types
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestValueTypes:

    @pytest.mark.parametrize("pages", [[], [0], [-1], [1.5], [True], ["2"]])
    def test_validate_pages_rejects(self, pages):
        with pytest.raises(ValueError):
            validate_pages(pages)

    def test_validate_pages_accepts_tuple(self):
        assert validate_pages((1, 3)) == [1, 3]

    def test_fallback_dict_carries_note_without_mutating_data(self):
        result = OperationResult("optimize", ResultSource.LOCAL_FALLBACK, {"afterSize": 10})

        assert result.to_dict() == {"afterSize": 10, "note": "local-fallback"}
        assert "note" not in result.data
