"""Who is calling: bearer-token claims and the checks routes make on them.

Tokens come from ``POST /auth/login`` and carry ``sub`` (user id), ``rol`` and
``org``. A SuperAdmin has no ``org`` and may act on any organization.
"""
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException

from elecciones.errors import Forbidden, http_error
from elecciones.models.user_model import Role
from elecciones.security import decode_access_token

Claims = Dict[str, Any]

ADMIN_ROLES = {Role.ADMIN.value, Role.SUPERADMIN.value}


def current_claims(authorization: Optional[str] = Header(None)) -> Claims:
    scheme, _, token = (authorization or "").partition(" ")
    claims = decode_access_token(token) if scheme.lower() == "bearer" else None
    if not claims or not claims.get("sub"):
        raise HTTPException(
            status_code=401, detail="Invalid or expired token.", headers={"WWW-Authenticate": "Bearer"}
        )
    return claims


def require_admin(claims: Claims = Depends(current_claims)) -> Claims:
    if claims.get("rol") not in ADMIN_ROLES:
        raise http_error(Forbidden())
    return claims


def can_manage(claims: Claims, organization_id: str) -> bool:
    if claims.get("rol") == Role.SUPERADMIN.value:
        return True
    return claims.get("rol") == Role.ADMIN.value and claims.get("org") == organization_id


def ensure_can_manage(claims: Claims, organization_id: str) -> None:
    if not can_manage(claims, organization_id):
        raise Forbidden(organization_id=organization_id)


def organization_admin(organization_id: str, claims: Claims = Depends(require_admin)) -> Claims:
    """An Admin of the organization named in the path or query."""
    try:
        ensure_can_manage(claims, organization_id)
    except Forbidden as e:
        raise http_error(e) from e
    return claims
