"""Provider directory service for business logic."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.core.redis_client import CacheManager
from app.models.providers import providers
from app.schemas.providers import (
    ProviderCreate,
    ProviderKind,
    ProviderSelfUpdate,
    ProviderUpdate,
)

logger = structlog.get_logger(__name__)


class ProviderService:
    """Service for provider (doctor / lab) operations."""

    # Cache TTL in seconds
    PROVIDER_CACHE_TTL = 900  # 15 minutes for individual providers
    PROVIDER_LIST_CACHE_TTL = 300  # 5 minutes for lists

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _get_provider_cache_key(provider_id: UUID) -> str:
        """Generate cache key for provider."""
        return f"provider:{provider_id}"

    def _invalidate(self, provider_id: UUID | None = None) -> None:
        if not self.cache:
            return
        if provider_id is not None:
            self.cache.delete(self._get_provider_cache_key(provider_id))
        self.cache.delete_pattern("provider:list:*")

    async def create_provider(self, db: AsyncSession, data: ProviderCreate) -> dict:
        """Create a new provider."""
        provider_id = uuid4()
        now = datetime.now(UTC)

        await db.execute(
            providers.insert().values(
                id=provider_id,
                kind=data.kind.value,
                name=data.name,
                email=data.email,
                speciality=data.speciality,
                degree=data.degree,
                experience=data.experience,
                about=data.about,
                image_url=data.image_url,
                fee=data.fee,
                available=data.available,
                address_line1=data.address_line1,
                address_line2=data.address_line2,
                created_at=now,
                updated_at=now,
            )
        )
        await db.commit()

        self._invalidate()
        logger.info("provider_created", provider_id=str(provider_id), kind=data.kind.value)

        provider = await self.get_provider(db, provider_id)
        if not provider:
            raise ValueError("Failed to create provider")
        return provider

    async def get_provider(self, db: AsyncSession, provider_id: UUID) -> dict | None:
        """Get provider by ID with caching."""
        if self.cache:
            cached = self.cache.get_json(self._get_provider_cache_key(provider_id))
            if cached:
                return cached

        result = await db.execute(select(providers).where(providers.c.id == provider_id))
        provider = result.mappings().first()

        if not provider:
            return None

        provider_dict = dict(provider)

        if self.cache:
            self.cache.set_json(
                self._get_provider_cache_key(provider_id),
                provider_dict,
                ttl=self.PROVIDER_CACHE_TTL,
            )

        return provider_dict

    async def require_provider(self, db: AsyncSession, provider_id: UUID) -> dict:
        """Get provider by ID or raise NotFoundException."""
        provider = await self.get_provider(db, provider_id)
        if not provider:
            raise NotFoundException("Provider not found")
        return provider

    async def list_providers(
        self,
        db: AsyncSession,
        kind: ProviderKind | None = None,
        available: bool | None = None,
        speciality: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[int, list[dict]]:
        """List providers with filters, newest first."""
        kind_key = kind.value if kind else None
        cache_key = f"provider:list:{kind_key}:{available}:{speciality}:{page}:{page_size}"
        if self.cache:
            cached = self.cache.get_json(cache_key)
            if cached:
                return cached["total"], cached["items"]

        conditions = []
        if kind:
            conditions.append(providers.c.kind == kind.value)
        if available is not None:
            conditions.append(providers.c.available == available)
        if speciality:
            conditions.append(providers.c.speciality == speciality)

        count_stmt = select(func.count()).select_from(providers).where(*conditions)
        total = (await db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(providers)
            .where(*conditions)
            .order_by(providers.c.created_at.desc(), providers.c.name)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        items = [dict(row) for row in (await db.execute(stmt)).mappings().all()]

        if self.cache:
            self.cache.set_json(
                cache_key,
                {"total": total, "items": items},
                ttl=self.PROVIDER_LIST_CACHE_TTL,
            )

        return total, items

    async def update_provider(
        self,
        db: AsyncSession,
        provider_id: UUID,
        data: ProviderUpdate | ProviderSelfUpdate,
    ) -> dict:
        """
        Update provider details.

        Fee changes apply to future bookings only; existing appointments keep
        the amount captured when they were booked. Omitted and null fields are
        left unchanged.
        """
        update_values: dict[str, Any] = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }

        if update_values:
            update_values["updated_at"] = datetime.now(UTC)
            result = await db.execute(
                update(providers).where(providers.c.id == provider_id).values(**update_values)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundException("Provider not found")
            await db.commit()
            self._invalidate(provider_id)

        return await self.require_provider(db, provider_id)

    async def set_availability(
        self,
        db: AsyncSession,
        provider_id: UUID,
        available: bool | None = None,
    ) -> dict:
        """
        Set or toggle whether a provider accepts bookings.

        Providers are never deleted; marking them unavailable is the way to
        retire them. Passing ``available=None`` flips the current flag.
        """
        new_value = available if available is not None else ~providers.c.available
        result = await db.execute(
            update(providers)
            .where(providers.c.id == provider_id)
            .values(available=new_value, updated_at=datetime.now(UTC))
        )
        if result.rowcount == 0:
            await db.rollback()
            raise NotFoundException("Provider not found")
        await db.commit()

        self._invalidate(provider_id)
        provider = await self.require_provider(db, provider_id)
        logger.info(
            "provider_availability_changed",
            provider_id=str(provider_id),
            available=provider["available"],
        )
        return provider

    async def count_by_kind(self, db: AsyncSession) -> dict[str, int]:
        """Count providers per kind."""
        stmt = select(providers.c.kind, func.count()).group_by(providers.c.kind)
        counts = {kind.value: 0 for kind in ProviderKind}
        for kind, count in (await db.execute(stmt)).all():
            counts[kind] = count
        return counts
