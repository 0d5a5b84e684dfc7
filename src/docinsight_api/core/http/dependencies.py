"""FastAPI dependencies bridging HTTP requests to bearer-token identities."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from docinsight_api.models import UserRole
from docinsight_api.settings import Settings

from ..auth import AuthenticatedPrincipal, AuthenticationError, principal_from_claims
from ..security import decode_token

_bearer_scheme = HTTPBearer(auto_error=False)

PrincipalDependency = Callable[..., Awaitable[AuthenticatedPrincipal]]


def get_app_settings(request: Request) -> Settings:
    """Return the settings the running application was created with."""

    return request.app.state.settings


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(
    settings: SettingsDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(_bearer_scheme)],
) -> AuthenticatedPrincipal:
    """Decode the bearer token into an :class:`AuthenticatedPrincipal`."""

    if credentials is None or not credentials.credentials:
        raise _unauthorized("Access token required")
    try:
        claims = decode_token(
            credentials.credentials,
            secret=settings.jwt_secret_value,
            algorithms=[settings.jwt_algorithm],
        )
        return principal_from_claims(claims)
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Token expired") from exc
    except (jwt.PyJWTError, AuthenticationError) as exc:
        raise _unauthorized("Invalid token") from exc


async def require_authenticated(
    principal: Annotated[AuthenticatedPrincipal, Depends(get_current_principal)],
) -> AuthenticatedPrincipal:
    return principal


def require_roles(*roles: UserRole) -> PrincipalDependency:
    """Return a dependency that admits only principals holding one of ``roles``."""

    allowed = frozenset(roles)

    async def dependency(
        principal: Annotated[AuthenticatedPrincipal, Depends(get_current_principal)],
    ) -> AuthenticatedPrincipal:
        if principal.role not in allowed:
            raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return principal

    return dependency


require_editor = require_roles(UserRole.EDITOR, UserRole.ADMIN)
require_admin = require_roles(UserRole.ADMIN)


__all__ = [
    "SettingsDep",
    "get_app_settings",
    "get_current_principal",
    "require_admin",
    "require_authenticated",
    "require_editor",
    "require_roles",
]
