"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : make_pdf, sample_pdf_bytes, fake_service, make_gateway,
                    make_token, app_with_overrides, async_client

Environment strategy:
  - The PDF service is never contacted. FakePdfService is an httpx.MockTransport
    that records every request and answers from a per-test route table.
  - PDFs for the local fallbacks are generated with PyMuPDF.
  - JWTs are signed with the HS256 test secret below.

How to run:
  pytest                               # all tests
  pytest -m unit                       # unit tests only
  pytest -m integration                # API tests through the ASGI app
  pytest backend/tests/unit/test_gateway.py
"""

from __future__ import annotations

import os
import tempfile
import time
from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any app imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

TEST_JWT_SECRET = "test-jwt-secret"

PDF_API_BASE    = "https://pdf.test/pdf-services/api"
PDF_BASE_URL    = "https://pdf.test"
DOCGEN_BASE_URL = "https://docgen.test"
TOKEN_URL       = "https://docgen.test/oauth2/token"

PDF_CLIENT_ID        = "pdf-client"
PDF_CLIENT_SECRET    = "pdf-secret-value"
DOCGEN_CLIENT_ID     = "docgen-client"
DOCGEN_CLIENT_SECRET = "docgen-secret-value"

os.environ.setdefault("JWT_SECRET",      TEST_JWT_SECRET)
os.environ.setdefault("UPLOAD_DIR",      tempfile.mkdtemp(prefix="docflow_test_uploads_"))
os.environ.setdefault("APP_ENV",         "development")
os.environ.setdefault("REQUEST_LOGGING", "off")


# ─────────────────────────────────────────────────────────────────────────────
# PDF fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    """
    Factory fixture: build a real PDF with one page per text.

    Usage:
        pdf = make_pdf(["Page one", "Page two"])
    """
    import fitz

    def _build(texts: list[str]) -> bytes:
        with fitz.open() as doc:
            for text in texts:
                page = doc.new_page()
                page.insert_text((72, 72), text)
            return doc.tobytes()

    return _build


@pytest.fixture
def sample_pdf_bytes(make_pdf) -> bytes:
    """Four pages, each carrying a unique marker string."""
    return make_pdf([f"Marker page {n}" for n in range(1, 5)])


# ─────────────────────────────────────────────────────────────────────────────
# Fake PDF service (httpx.MockTransport)
# ─────────────────────────────────────────────────────────────────────────────

class FakePdfService:
    """
    Route table keyed by (method, url). Values are httpx.Response objects,
    callables taking the request, or exceptions to raise. Every request is
    recorded in `requests`.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], object] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, url: str, response: object) -> None:
        self.routes[(method.upper(), url)] = response

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and str(r.url) == url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, str(request.url)))
        if route is None:
            return httpx.Response(404, json={"error": "no route"})
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        return route

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # Canned happy paths -----------------------------------------------------

    def accept_two_step(self, transform: str, task_id: str = "task-1", document_id: str = "doc-1") -> None:
        self.on("POST", f"{PDF_API_BASE}/documents/upload", httpx.Response(200, json={"documentId": document_id}))
        self.on("POST", f"{PDF_API_BASE}/documents/{transform}", httpx.Response(202, json={"taskId": task_id}))

    def grant_tokens(self, token: str = "docgen-token", expires_in: object = 3600) -> None:
        self.on("POST", TOKEN_URL, httpx.Response(200, json={"access_token": token, "expires_in": expires_in}))


@pytest.fixture
def fake_service() -> FakePdfService:
    return FakePdfService()


@pytest.fixture
def test_settings():
    from docflow.core.config import Settings
    return Settings(
        pdf_service_base_url=DOCGEN_BASE_URL,
        pdf_service_pdf_base_url=PDF_BASE_URL,
        pdf_service_pdf_api_base=PDF_API_BASE,
        pdf_service_oauth_token_url=TOKEN_URL,
        pdf_service_pdf_client_id=PDF_CLIENT_ID,
        pdf_service_pdf_client_secret=PDF_CLIENT_SECRET,
        pdf_service_docgen_client_id=DOCGEN_CLIENT_ID,
        pdf_service_docgen_client_secret=DOCGEN_CLIENT_SECRET,
        pdf_service_timeout_seconds=1.0,
        pdf_service_max_retries=0,
        pdf_service_retry_backoff_seconds=0.0,
    )


@pytest.fixture
def make_gateway(test_settings, fake_service):
    """Factory: PdfGateway wired to the fake service. Settings overridable per test."""
    from docflow.gateway.facade import build_gateway

    def _build(**overrides):
        cfg = test_settings.model_copy(update=overrides) if overrides else test_settings
        return build_gateway(settings=cfg, transport=fake_service.transport)

    return _build


# ─────────────────────────────────────────────────────────────────────────────
# JWT token factory
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_token():
    """
    Factory fixture: returns a function that builds signed test JWTs.

    Usage:
        token = make_token()
        token = make_token(role="admin")
        token = make_token(expired=True)
    """
    from jose import jwt as jose_jwt

    def _build(
        user_id: str  = "user-1",
        role:    str  = "user",
        expired: bool = False,
        secret:  str  = TEST_JWT_SECRET,
    ) -> str:
        now = int(time.time())
        claims = {
            "id":   user_id,
            "role": role,
            "iat":  now,
            "exp":  now - 60 if expired else now + 3600,
        }
        return jose_jwt.encode(claims, secret, algorithm="HS256")

    return _build


@pytest.fixture
def auth_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI test client with the gateway wired to the fake service
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def app_with_overrides(make_gateway):
    """
    FastAPI app whose PdfGateway talks to FakePdfService.
    JWT verification stays real; tests send auth_headers.
    """
    from docflow.gateway.facade import get_pdf_gateway
    from docflow.main import app

    gateway = make_gateway()
    app.dependency_overrides[get_pdf_gateway] = lambda: gateway

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client using the overridden app."""
    from httpx import ASGITransport
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
