"""
Authorization gate: bearer-token authentication, per-route role checks and
the shared ownership predicate.
"""

from typing import Any, Callable, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from errors import AuthError, ForbiddenError
from schemas import Identity, Role
from security import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/signin", auto_error=False)


async def get_current_identity(token: Optional[str] = Depends(oauth2_scheme)) -> Identity:
    # Claims are trusted as issued; no store lookup per request
    if not token:
        raise AuthError("Authentication required")
    return decode_access_token(token)


def require_roles(*roles: Role) -> Callable:
    allowed = set(roles)

    async def check_role(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in allowed:
            raise ForbiddenError(f"Requires role: {', '.join(sorted(allowed))}")
        return identity

    return check_role


def can_access_resource(identity: Identity, owner_id: Any) -> bool:
    """Admins bypass ownership; everyone else must own the resource."""
    return identity.role == "admin" or str(owner_id) == identity.id
