"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.config import settings
from clinic_scheduler.core.redis_client import CacheManager, get_redis_client
from clinic_scheduler.core.security import caller_from_payload, decode_access_token
from clinic_scheduler.database import get_db
from clinic_scheduler.schemas.auth import Caller
from clinic_scheduler.services.appointment_events import AppointmentEventBus, appointment_events

# Security
security = HTTPBearer(auto_error=False)


async def get_current_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Caller:
    """
    Extract and validate the caller identity from a JWT token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Caller with user id and role

    Raises:
        HTTPException: If the token is missing, invalid or expired
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    caller = caller_from_payload(payload) if payload is not None else None

    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return caller


async def require_elevated(
    caller: Annotated[Caller, Depends(get_current_caller)],
) -> Caller:
    """Allow only doctors, staff and admins."""
    if not caller.is_elevated:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Clinic staff access required",
        )
    return caller


def get_cache_manager() -> CacheManager | None:
    """Slot cache, or None when caching is disabled."""
    if not settings.cache_enabled:
        return None
    return CacheManager(get_redis_client())


def get_event_bus() -> AppointmentEventBus:
    return appointment_events


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentCaller = Annotated[Caller, Depends(get_current_caller)]
ElevatedCaller = Annotated[Caller, Depends(require_elevated)]
SlotCache = Annotated[CacheManager | None, Depends(get_cache_manager)]
EventBus = Annotated[AppointmentEventBus, Depends(get_event_bus)]
