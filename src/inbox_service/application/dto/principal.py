from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated operator identity extracted from JWT."""

    subject_id: str
    roles: list[str] = field(default_factory=list)

    @property
    def principal_key(self) -> str:
        """Unique key for WS connection registry."""
        return f"operator:{self.subject_id}"

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> Principal:
        subject = claims.get("sub")
        if subject in (None, ""):
            raise ValueError("token has no subject")
        roles = claims.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]
        return cls(subject_id=str(subject), roles=list(roles))
