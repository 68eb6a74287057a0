"""Auth dependencies — JWT decoding and approver enforcement.

Session management lives outside this service; a bearer token only has to
carry ``sub`` (the user id) and an optional ``roles`` list.
"""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from intranet.auth.schemas import Caller
from intranet.common.constants import ApproverRole
from intranet.common.exceptions import ForbiddenException
from intranet.config import settings


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


def _parse_roles(raw) -> frozenset[ApproverRole]:
    roles: set[ApproverRole] = set()
    for value in raw or ():
        try:
            roles.add(ApproverRole(value))
        except ValueError:
            # unknown roles grant nothing
            continue
    return frozenset(roles)


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_caller(request: Request) -> Caller:
    """Validate the JWT and return the calling user with their capabilities."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Token has no subject.")

    return Caller(user_id=str(subject), roles=_parse_roles(payload.get("roles")))


# ── Capability-based dependency ─────────────────────────────────────

async def require_approver(
    caller: Caller = Depends(get_current_caller),
) -> Caller:
    """Allow only callers holding at least one approval capability."""
    if not caller.is_approver:
        raise ForbiddenException("This action requires an approver role.")
    return caller
