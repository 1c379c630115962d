"""FastAPI dependencies resolving the caller's authorization context."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..database import get_db
from ..models import Location
from ..security.sessions import SessionClaims
from .context import UserContext
from .permissions import Role, has_role
from .service import PermissionService, can_access_location


def get_session_claims(request: Request) -> SessionClaims:
    claims = getattr(request.state, "session", None)
    if claims is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return claims


async def get_user_context(
    claims: SessionClaims = Depends(get_session_claims),
    db: AsyncSession = Depends(get_db),
) -> UserContext:
    context = await PermissionService(db).get_user_context(claims.user_id)
    if context is None:
        raise HTTPException(status_code=403, detail="User profile not found or inactive")
    if context.tenant_id != claims.tenant_id:
        raise HTTPException(status_code=403, detail="Session does not match user tenant")
    context.user.last_login = utcnow()
    await db.commit()
    return context


def require_role(*roles: Role | str):
    """Dependency factory: caller must hold one of ``roles`` or a higher role."""

    async def _dep(context: UserContext = Depends(get_user_context)) -> UserContext:
        if not has_role(context.role, roles):
            raise HTTPException(
                status_code=403,
                detail={
                    "error": "Insufficient permissions",
                    "required": [Role(r).value for r in roles],
                    "current": context.role.value,
                },
            )
        return context

    return _dep


async def load_accessible_location(db: AsyncSession, context: UserContext, location_id: str) -> Location:
    """The tenant's location, or 404; 403 when the caller is not assigned to it."""
    location = await db.get(Location, location_id)
    if location is None or location.tenant_id != context.tenant_id:
        raise HTTPException(status_code=404, detail=f"Location '{location_id}' not found")
    if not can_access_location(context, location_id):
        raise HTTPException(status_code=403, detail="User does not have access to this location")
    return location
