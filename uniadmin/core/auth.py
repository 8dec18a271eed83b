"""
JWT caller context

Tokens are issued by the external auth service; this module only decodes
them into the context the core works with.
"""

from dataclasses import dataclass
from jose import JWTError, jwt
from typing import Dict, Optional

from uniadmin.core.config import get_settings
from uniadmin.core.errors import MalformedIdentity
from uniadmin.core.identity import CompositeIdentity, parse
from uniadmin.core.permissions import Role


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller: role, department and own identity"""
    role: Role
    tenant_code: Optional[str]
    user_identity: CompositeIdentity


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate JWT token"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None


def caller_from_claims(payload: Dict) -> Optional[CallerContext]:
    """Build the caller context from token claims, None if they are inconsistent"""
    try:
        role = Role(payload.get("role"))
        identity = parse(payload.get("sub"))
    except (ValueError, MalformedIdentity):
        return None

    tenant = payload.get("tenant")
    if role in (Role.STUDENT, Role.ACADEMIC, Role.DEPARTMENT_ADMIN):
        # Department users act only inside the department that owns them
        if not tenant or identity.tenant != tenant:
            return None

    return CallerContext(role=role, tenant_code=tenant, user_identity=identity)


def verify_token(token: str) -> Optional[CallerContext]:
    """Verify token and return the caller context if valid"""
    payload = decode_access_token(token)
    if payload is None:
        return None
    return caller_from_claims(payload)
