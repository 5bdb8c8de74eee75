"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.redis_client import CacheManager, get_redis_client
from app.core.security import InvalidTokenError, principal_from_token
from app.database import get_db
from app.schemas.auth import Principal
from app.services.payment_gateway import PaymobGateway, SettlementGateway

# Security
security = HTTPBearer()


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """
    Extract and validate the caller from a JWT token.

    Tokens are issued by the identity service; ``sub`` is the caller's id
    and ``role`` one of patient, doctor, lab or admin (patient if absent).

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return principal_from_token(credentials.credentials)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """
    Require the caller to be an administrator.

    Raises:
        HTTPException: If the caller is not an administrator
    """
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return principal


async def require_provider(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """
    Require the caller to be a doctor or lab acting on its own profile.

    Raises:
        HTTPException: If the caller is not a provider
    """
    if not principal.is_provider:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Doctor or lab access required",
        )
    return principal


def get_cache_manager() -> CacheManager | None:
    """Cache manager over the shared Redis client."""
    return CacheManager(get_redis_client())


def get_payment_gateway() -> SettlementGateway:
    """Configured payment gateway."""
    return PaymobGateway()


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
ProviderPrincipal = Annotated[Principal, Depends(require_provider)]
CacheManagerDep = Annotated[CacheManager | None, Depends(get_cache_manager)]
PaymentGateway = Annotated[SettlementGateway, Depends(get_payment_gateway)]
