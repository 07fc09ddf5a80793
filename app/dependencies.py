"""
AuditPulse - FastAPI Dependencies

Shared dependencies for authentication, database sessions and audit
services.

This module provides dependency injection for:
1. Database sessions
2. Caller context (user id + organization) from the bearer token
3. Audit engine services wired to the session factory
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import get_async_session, get_session_factory
from app.models.user import Profile
from app.services.audit_intelligence_service import AuditIntelligenceClient
from app.services.audit_run_service import AuditRunService
from app.services.audit_snapshot_service import SnapshotGatherer
from app.services.auditor_pack_service import AuditorPackService
from app.utils.error_handling import (
    AuthenticationException,
    NoOrganizationException,
    TokenInvalidException,
)
from app.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller and the organization whose books they audit."""
    user_id: uuid.UUID
    organization_id: uuid.UUID


def _extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials:
        return credentials.credentials
    # Fallback to cookie
    token = request.cookies.get("access_token")
    if token and token.startswith("Bearer "):
        token = token[7:]
    return token


async def get_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> CallerContext:
    """
    Resolve the caller from the JWT and their profile.

    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie

    Raises:
        AuthenticationException: no token, unknown user
        TokenInvalidException: bad signature, expired, or malformed subject
        NoOrganizationException: the profile names no organization
    """
    token = _extract_token(request, credentials)
    if not token:
        raise AuthenticationException("Not authenticated")

    payload = verify_access_token(token)
    if not payload:
        raise TokenInvalidException("Invalid or expired token")

    subject = payload.get("sub")
    if not subject:
        raise TokenInvalidException("Invalid token payload")
    try:
        user_id = uuid.UUID(str(subject))
    except ValueError:
        raise TokenInvalidException("Invalid user ID in token")

    profile = await db.get(Profile, user_id)
    if profile is None:
        raise AuthenticationException("User not found")
    if profile.organization_id is None:
        raise NoOrganizationException(user_id)

    return CallerContext(user_id=user_id, organization_id=profile.organization_id)


# ===========================================
# SERVICES
# ===========================================

def get_snapshot_gatherer(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> SnapshotGatherer:
    return SnapshotGatherer(session_factory)


def get_intelligence_client() -> AuditIntelligenceClient:
    return AuditIntelligenceClient()


def get_audit_run_service(
    db: AsyncSession = Depends(get_async_session),
    gatherer: SnapshotGatherer = Depends(get_snapshot_gatherer),
    intelligence: AuditIntelligenceClient = Depends(get_intelligence_client),
) -> AuditRunService:
    return AuditRunService(db, gatherer, intelligence)


def get_auditor_pack_service(
    db: AsyncSession = Depends(get_async_session),
    gatherer: SnapshotGatherer = Depends(get_snapshot_gatherer),
) -> AuditorPackService:
    return AuditorPackService(db, gatherer)
