from __future__ import annotations

import asyncio
import logging

import jwt
from jwt import PyJWKClient

from inbox_service.application.dto.principal import Principal

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify operator JWTs against a remote JWKS endpoint."""

    def __init__(self, jwks_url: str) -> None:
        self._jwks_url = jwks_url
        self._jwk_client = PyJWKClient(jwks_url, cache_keys=True)

    async def verify(self, token: str) -> Principal:
        # Key fetches are blocking HTTP calls; keep them off the event loop.
        signing_key = await asyncio.to_thread(self._jwk_client.get_signing_key_from_jwt, token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
            options={"require": ["sub", "exp"]},
        )
        logger.debug("Verified operator token for %s via %s", claims.get("sub"), self._jwks_url)
        return Principal.from_claims(claims)
