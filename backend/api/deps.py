"""
Mesa API Dependencies

Dependency injection for DB sessions, auth, and tenant context.
"""

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import AsyncSessionLocal
from intelligence.reader import IntelligenceReader, parse_branch_scope

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

# Dev tenant_id must match the local seed data
DEV_TENANT_ID = "00000000-0000-0000-0000-000000000001"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {
            "sub": "dev-user",
            "email": "dev@mesa.app",
            "tenant_id": DEV_TENANT_ID,
        }

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_tenant_db(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> AsyncSession:
    """
    Get a DB session with tenant context set.
    Sets PostgreSQL RLS variable for row-level security.
    """
    tenant_id = user.get("tenant_id")
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tenant context",
        )
    await db.execute(
        text("SELECT set_config('app.current_tenant_id', :tid, true)"),
        {"tid": str(tenant_id)},
    )
    return db


async def get_reader(
    db: AsyncSession = Depends(get_tenant_db),
    user: dict = Depends(get_current_user),
) -> IntelligenceReader:
    """Read-only accessor scoped to the caller's tenant."""
    try:
        tenant_id = uuid.UUID(str(user.get("tenant_id")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid tenant context")
    return IntelligenceReader(db, tenant_id=tenant_id)


def get_branch_scope(
    branch_id: str | None = Query(None, description="Branch UUID, or GLOBAL / omitted for all branches"),
) -> uuid.UUID | None:
    try:
        return parse_branch_scope(branch_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid branch_id '{branch_id}'. Use a branch UUID or GLOBAL.",
        )
