"""
Application configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docflow.gateway.credentials import CredentialSet, SurfaceKind

# Provider docs once published the pdf host with a dot instead of a dash;
# copied env files still carry it.
_HOST_TYPO = ("developer.api.", "developer-api.")


def normalize_base_url(url: str) -> str:
    """Fix the known provider hostname typo and drop trailing slashes."""
    if not url:
        return url
    return url.replace(*_HOST_TYPO).rstrip("/")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ------------------------------------------------------------------
    # PDF service: endpoints
    # ------------------------------------------------------------------
    pdf_service_base_url:        str = "https://na1.fusion.foxit.com"       # docgen surface
    pdf_service_pdf_base_url:    str = "https://app.developer-api.foxit.com"
    pdf_service_pdf_api_base:    str = ""   # empty = <pdf base>/pdf-services/api
    pdf_service_oauth_token_url: str = ""   # empty = <base>/oauth2/token

    # ------------------------------------------------------------------
    # PDF service: credentials (one set per surface)
    # ------------------------------------------------------------------
    pdf_service_docgen_client_id:     str = ""
    pdf_service_docgen_client_secret: str = ""
    pdf_service_docgen_scope:         str = ""

    pdf_service_pdf_client_id:     str = ""
    pdf_service_pdf_client_secret: str = ""
    pdf_service_pdf_scope:         str = ""

    # ------------------------------------------------------------------
    # PDF service: timeout / retry policy
    # ------------------------------------------------------------------
    pdf_service_timeout_seconds:       float = 10.0
    pdf_service_max_retries:           int   = 0     # extra remote attempts before fallback
    pdf_service_retry_backoff_seconds: float = 0.5

    # ------------------------------------------------------------------
    # Auth: HS256 tokens issued by the account service
    # ------------------------------------------------------------------
    jwt_secret:    str = "change-me"
    jwt_algorithm: str = "HS256"

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------
    upload_dir:       str = "uploads"
    max_upload_bytes: int = 25 * 1024 * 1024

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    cors_origins:    str  = "*"        # comma-separated allowlist
    request_logging: str  = "on"       # "off" disables the access log middleware
    app_env:         str  = "development"   # development | staging | production
    debug:           bool = False

    @field_validator(
        "pdf_service_base_url",
        "pdf_service_pdf_base_url",
        "pdf_service_pdf_api_base",
        "pdf_service_oauth_token_url",
    )
    @classmethod
    def _normalize_urls(cls, value: str) -> str:
        return normalize_base_url(value)

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def docgen_base_url(self) -> str:
        return self.pdf_service_base_url

    @property
    def pdf_base_url(self) -> str:
        return self.pdf_service_pdf_base_url

    @property
    def pdf_api_base(self) -> str:
        return self.pdf_service_pdf_api_base or f"{self.pdf_base_url}/pdf-services/api"

    @property
    def oauth_token_url(self) -> str:
        return self.pdf_service_oauth_token_url or f"{self.pdf_service_base_url}/oauth2/token"

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def credentials(self, kind: SurfaceKind) -> CredentialSet:
        """Immutable credential set for one surface."""
        if kind is SurfaceKind.DOCGEN:
            return CredentialSet(
                kind=kind,
                client_id=self.pdf_service_docgen_client_id,
                client_secret=self.pdf_service_docgen_client_secret,
                scope=self.pdf_service_docgen_scope or None,
            )
        return CredentialSet(
            kind=kind,
            client_id=self.pdf_service_pdf_client_id,
            client_secret=self.pdf_service_pdf_client_secret,
            scope=self.pdf_service_pdf_scope or None,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
