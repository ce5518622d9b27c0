"""
Outbound Authorization header strategies, keyed by surface.

The pdf surface accepts HTTP Basic with the raw client id/secret on every
endpoint, so it never goes through the token exchange. The docgen surface
only accepts OAuth bearer tokens.
"""

from __future__ import annotations

import base64
from typing import Awaitable, Callable

from docflow.gateway.credentials import CredentialSet, SurfaceKind
from docflow.gateway.token_provider import TokenProvider

HeaderMap = dict[str, str]


def basic_auth_header(creds: CredentialSet) -> HeaderMap:
    raw = f"{creds.client_id or ''}:{creds.client_secret or ''}".encode()
    return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}


class AuthHeaderBuilder:

    def __init__(
        self,
        credentials:    dict[SurfaceKind, CredentialSet],
        token_provider: TokenProvider,
    ) -> None:
        self._credentials = credentials
        self._tokens      = token_provider
        self._strategies: dict[SurfaceKind, Callable[[SurfaceKind], Awaitable[HeaderMap]]] = {
            SurfaceKind.PDF:    self._basic,
            SurfaceKind.DOCGEN: self._bearer,
        }

    async def build(self, kind: SurfaceKind) -> HeaderMap:
        return await self._strategies[kind](kind)

    async def _basic(self, kind: SurfaceKind) -> HeaderMap:
        return basic_auth_header(self._credentials[kind])

    async def _bearer(self, kind: SurfaceKind) -> HeaderMap:
        token = await self._tokens.acquire_token(kind)
        return {"Authorization": f"Bearer {token}"}
