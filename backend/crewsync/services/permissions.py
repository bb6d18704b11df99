"""
Berechtigungsprüfungen für Schicht- und Timesheet-Aktionen.

Die Sitzung (wer ist angemeldet, welche Rolle) liefert api/deps.py; hier wird
nur entschieden, ob ein Benutzer eine bestimmte Aktion auf einer Schicht darf.
"""
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crewsync.models.assignment import AssignedPersonnel
from crewsync.models.company import Job
from crewsync.models.shift import Shift
from crewsync.models.user import User, UserRole
from crewsync.utils.roles import RoleCode


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN.value


async def is_shift_crew_chief(db: AsyncSession, user: User, shift_id: uuid.UUID) -> bool:
    """True, wenn der Benutzer auf genau dieser Schicht als Crew Chief eingeteilt ist."""
    result = await db.execute(
        select(AssignedPersonnel.id).where(
            AssignedPersonnel.shift_id == shift_id,
            AssignedPersonnel.user_id == user.id,
            AssignedPersonnel.role_code == RoleCode.CREW_CHIEF.value,
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def is_company_principal(db: AsyncSession, user: User, shift_id: uuid.UUID) -> bool:
    if user.role != UserRole.COMPANY_USER.value or user.company_id is None:
        return False
    result = await db.execute(
        select(Job.company_id).join(Shift, Shift.job_id == Job.id).where(Shift.id == shift_id)
    )
    return result.scalar_one_or_none() == user.company_id


async def can_manage_shift(db: AsyncSession, user: User, shift_id: uuid.UUID) -> bool:
    return is_admin(user) or await is_shift_crew_chief(db, user, shift_id)


async def can_approve_as_company(db: AsyncSession, user: User, shift_id: uuid.UUID) -> bool:
    if is_admin(user):
        return True
    if await is_company_principal(db, user, shift_id):
        return True
    return await is_shift_crew_chief(db, user, shift_id)
