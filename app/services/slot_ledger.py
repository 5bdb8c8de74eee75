"""Slot ledger: which (date-key, time-label) pairs a provider has reserved.

The ledger never commits. Callers run its statements inside their own
transaction so that a reservation row and its appointment record appear and
disappear together.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.slot_calendar import parse_time_label
from app.models.slot_reservations import slot_reservations

_SLOT_COLUMNS = ["provider_id", "slot_date", "slot_time"]


class SlotLedger:
    """Reserved-slot bookkeeping backed by the ``slot_reservations`` table."""

    def __init__(self, db: AsyncSession):
        """Initialize ledger with database session."""
        self.db = db

    def _dialect(self) -> str:
        return self.db.get_bind().dialect.name

    async def add_if_absent(
        self,
        provider_id: UUID,
        slot_date: str,
        slot_time: str,
        appointment_id: UUID,
    ) -> bool:
        """
        Reserve a slot unless it is already taken.

        This is a single conditional insert; the unique constraint on
        (provider_id, slot_date, slot_time) decides the winner when several
        transactions race for the same slot.

        Returns:
            True if this call added the reservation, False if the slot was taken
        """
        values = {
            "provider_id": provider_id,
            "slot_date": slot_date,
            "slot_time": slot_time,
            "appointment_id": appointment_id,
            "created_at": datetime.now(UTC),
        }

        dialect = self._dialect()
        if dialect in ("postgresql", "sqlite"):
            dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = (
                dialect_insert(slot_reservations)
                .values(**values)
                .on_conflict_do_nothing(index_elements=_SLOT_COLUMNS)
                .returning(slot_reservations.c.appointment_id)
            )
            result = await self.db.execute(stmt)
            return result.first() is not None

        # Other backends: let the unique constraint raise
        try:
            await self.db.execute(insert(slot_reservations).values(**values))
        except IntegrityError:
            return False
        return True

    async def release(self, appointment_id: UUID) -> bool:
        """
        Remove the reservation held by an appointment.

        Returns:
            True if a reservation was removed
        """
        result = await self.db.execute(
            delete(slot_reservations).where(slot_reservations.c.appointment_id == appointment_id)
        )
        return bool(result.rowcount)

    async def booked_times(
        self,
        provider_id: UUID,
        slot_dates: Iterable[str] | None = None,
    ) -> dict[str, set[str]]:
        """Reserved time labels per date key for one provider."""
        stmt = select(slot_reservations.c.slot_date, slot_reservations.c.slot_time).where(
            slot_reservations.c.provider_id == provider_id
        )
        if slot_dates is not None:
            stmt = stmt.where(slot_reservations.c.slot_date.in_(list(slot_dates)))

        booked: dict[str, set[str]] = defaultdict(set)
        for slot_date, slot_time in (await self.db.execute(stmt)).all():
            booked[slot_date].add(slot_time)
        return dict(booked)

    async def slots_booked(self, provider_id: UUID) -> dict[str, list[str]]:
        """Provider's ``slots_booked`` map with time labels in clock order."""
        booked = await self.booked_times(provider_id)
        return {
            slot_date: sorted(times, key=parse_time_label) for slot_date, times in booked.items()
        }
