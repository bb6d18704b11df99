"""
Zeiterfassung pro Einsatz: fortlaufend nummerierte Ein-/Ausstempel-Paare.

Invariante: pro AssignedPersonnel höchstens ein offener Eintrag (is_active,
ohne clock_out). Alle Funktionen arbeiten innerhalb der Transaktion des
Aufrufers und committen nicht selbst.
"""
import logging
import uuid
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from crewsync.core.config import settings
from crewsync.core.exceptions import InvalidStateError, NoActiveEntryError
from crewsync.models.assignment import AssignedPersonnel, TimeEntry
from crewsync.utils.time_utils import as_utc, hours_between

logger = logging.getLogger(__name__)


def elapsed_hours(entry: TimeEntry) -> float:
    return hours_between(entry.clock_in, entry.clock_out)


async def list_entries(db: AsyncSession, assignment_id: uuid.UUID) -> list[TimeEntry]:
    result = await db.execute(
        select(TimeEntry)
        .where(TimeEntry.assigned_personnel_id == assignment_id)
        .order_by(TimeEntry.entry_number)
    )
    return list(result.scalars().all())


async def get_active_entry(db: AsyncSession, assignment_id: uuid.UUID) -> TimeEntry | None:
    result = await db.execute(
        select(TimeEntry).where(
            TimeEntry.assigned_personnel_id == assignment_id,
            TimeEntry.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def next_entry_number(db: AsyncSession, assignment_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.max(TimeEntry.entry_number)).where(TimeEntry.assigned_personnel_id == assignment_id)
    )
    return (result.scalar() or 0) + 1


async def open_entry(db: AsyncSession, assignment: AssignedPersonnel, at: datetime) -> TimeEntry:
    if await get_active_entry(db, assignment.id) is not None:
        raise InvalidStateError(
            "Worker is already clocked in",
            expected="no open time entry", actual="open time entry",
            assignment_id=str(assignment.id),
        )
    number = await next_entry_number(db, assignment.id)
    limit = settings.MAX_TIME_ENTRIES_PER_ASSIGNMENT
    if number > limit:
        raise InvalidStateError(
            f"Maximum time entries ({limit}) reached for this shift",
            expected=f"at most {limit} entries", actual=number,
            assignment_id=str(assignment.id),
        )
    entry = TimeEntry(
        assigned_personnel_id=assignment.id,
        entry_number=number,
        clock_in=as_utc(at),
        is_active=True,
    )
    db.add(entry)
    await db.flush()
    return entry


async def close_active_entry(db: AsyncSession, assignment: AssignedPersonnel, at: datetime) -> TimeEntry:
    entry = await get_active_entry(db, assignment.id)
    if entry is None:
        raise NoActiveEntryError(
            "No open time entry to close",
            expected="open time entry", actual=None,
            assignment_id=str(assignment.id),
        )
    entry.clock_out = as_utc(at)
    entry.is_active = False
    if hours_between(entry.clock_in, entry.clock_out) == 0:
        logger.warning("Time entry %s closed with zero elapsed time", entry.id)
    await db.flush()
    return entry


async def total_hours(db: AsyncSession, assignment_id: uuid.UUID) -> float:
    return sum(elapsed_hours(e) for e in await list_entries(db, assignment_id))
