"""
OAuth client-credentials token provider.

Consults the CredentialCache first; on a miss (or a token inside the 30 s
safety margin) POSTs a url-encoded client_credentials grant to the token
endpoint and caches the result. Failures raise AuthError and are never
retried here — retry policy belongs to the gateway facade.
"""

from __future__ import annotations

import logging

import httpx

from docflow.gateway.credentials import CredentialCache, CredentialSet, SurfaceKind
from docflow.gateway.errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


def _parse_expires_in(raw: object) -> float:
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_EXPIRES_IN
    return value if value > 0 else DEFAULT_EXPIRES_IN


class TokenProvider:

    def __init__(
        self,
        token_url:   str,
        credentials: dict[SurfaceKind, CredentialSet],
        cache:       CredentialCache | None = None,
        timeout:     float = 10.0,
        transport:   httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_url   = token_url
        self._credentials = credentials
        self._cache       = cache or CredentialCache()
        self._timeout     = timeout
        self._transport   = transport

    @property
    def cache(self) -> CredentialCache:
        return self._cache

    async def acquire_token(self, kind: SurfaceKind) -> str:
        """Return a bearer token for the surface, refreshing it if needed."""
        cached = self._cache.get_fresh(kind)
        if cached:
            return cached.token

        creds = self._credentials.get(kind)
        if creds is None:
            raise AuthError(str(kind.value), "no credentials configured for surface")

        form = {
            "grant_type":    "client_credentials",
            "client_id":     creds.client_id or "",
            "client_secret": creds.client_secret or "",
        }
        if creds.scope:
            form["scope"] = creds.scope

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as http:
                resp = await http.post(self._token_url, data=form)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Token request failed | kind=%s status=%d",
                kind.value, exc.response.status_code,
            )
            raise AuthError(kind.value, f"token endpoint returned {exc.response.status_code}",
                            status=exc.response.status_code) from exc
        except httpx.RequestError as exc:
            logger.error("Token request network error | kind=%s error=%s", kind.value, exc)
            raise AuthError(kind.value, f"token endpoint unreachable: {exc}") from exc
        except ValueError as exc:
            raise AuthError(kind.value, "token endpoint returned invalid JSON") from exc

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise AuthError(kind.value, "Failed to obtain access token")

        entry = self._cache.put(kind, access_token, _parse_expires_in(body.get("expires_in")))
        logger.debug("Token refreshed | kind=%s expires_at=%.0f", kind.value, entry.expires_at)
        return access_token
