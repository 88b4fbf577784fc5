"""
Session Resolution
==================

Maps an incoming bearer token (or ``sf_token`` cookie) to a Session.

Two static tokens are recognised: the admin token (platform-wide access)
and the client token (bound to ``DEFAULT_CLIENT_ID``). When neither is
configured, non-production environments treat every request as admin so
the service runs without auth setup during development.
"""

import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from supportflow.config import Settings, UserRole, settings
from supportflow.core import ForbiddenException, UnauthorizedException

SESSION_COOKIE = "sf_token"


@dataclass(frozen=True)
class Session:
    """Resolved caller identity."""
    role: str
    tenant_id: Optional[str]  # None for admin (platform-wide)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


def resolve_token(token: str, config: Settings) -> Optional[Session]:
    """Resolve a raw token into a Session, or None if it grants nothing."""
    if not config.admin_token and not config.client_token:
        if config.is_production:
            return None
        return Session(role=UserRole.ADMIN, tenant_id=None)

    if not token:
        return None

    if config.admin_token and _same(token, config.admin_token):
        return Session(role=UserRole.ADMIN, tenant_id=None)

    if config.client_token and _same(token, config.client_token):
        return Session(role=UserRole.CLIENT, tenant_id=config.default_client_id)

    return None


def extract_token(request: Request) -> str:
    """Bearer header first, then the session cookie."""
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip()
    return request.cookies.get(SESSION_COOKIE, "")


async def get_current_session(request: Request) -> Session:
    """FastAPI dependency: resolve the caller or fail with 401."""
    session = resolve_token(extract_token(request), settings)
    if session is None:
        raise UnauthorizedException("Unauthorized")
    return session


def resolve_tenant(session: Session, requested_tenant_id: Optional[str]) -> Optional[str]:
    """
    Decide which tenant an operation acts for.

    Clients always act for their own tenant and may not name another one;
    admins act for the tenant they name, or platform-wide when they name none.
    """
    if session.is_admin:
        return requested_tenant_id or None
    if requested_tenant_id and requested_tenant_id != session.tenant_id:
        raise ForbiddenException("Forbidden")
    if not session.tenant_id:
        raise ForbiddenException("Client session has no tenant")
    return session.tenant_id


def is_authorized_cron(request: Request, config: Settings) -> bool:
    """Check the shared secret on scheduler-triggered endpoints."""
    secret = config.cron_secret
    if not secret:
        return not config.is_production

    header_secret = request.headers.get("x-cron-secret", "")
    query_secret = request.query_params.get("secret", "")
    return _same(header_secret, secret) or _same(query_secret, secret)
