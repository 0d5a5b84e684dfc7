"""Lightweight identity representation decoded from bearer tokens."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from docinsight_api.models import UserRole

from .errors import AuthenticationError


@dataclass(slots=True, frozen=True)
class AuthenticatedPrincipal:
    """Identity information available to downstream handlers."""

    user_id: UUID
    role: UserRole
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_view_all_documents(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.EDITOR)


def principal_from_claims(claims: Mapping[str, Any]) -> AuthenticatedPrincipal:
    """Build a principal from decoded JWT claims (``user_id``, ``role``, ``email``)."""

    try:
        user_id = UUID(str(claims["user_id"]))
        role = UserRole(str(claims["role"]))
    except (KeyError, ValueError) as exc:
        raise AuthenticationError("Invalid token payload") from exc
    email = claims.get("email")
    return AuthenticatedPrincipal(user_id=user_id, role=role, email=str(email) if email else None)


__all__ = ["AuthenticatedPrincipal", "principal_from_claims"]
