from __future__ import annotations

import jwt

from inbox_service.application.dto.principal import Principal


class HS256Verifier:
    """Verify operator JWTs signed with a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        if not secret:
            raise ValueError("JWT_SECRET must be set for shared-secret verification")
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        claims = jwt.decode(
            token,
            self._secret,
            algorithms=[self._algorithm],
            options={"require": ["sub", "exp"]},
        )
        return Principal.from_claims(claims)
