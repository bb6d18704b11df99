"""
Doppelbuchungs-Erkennung: überschneidet sich ein Zeitfenster mit anderen
Einsätzen desselben Mitarbeiters?

Reine Lese-Operation. Der Aufrufer entscheidet, ob trotzdem zugewiesen wird.
Intervalle sind halboffen [start, end) – aneinandergrenzende Schichten
(14:00 Ende / 14:00 Beginn) sind kein Konflikt.
"""
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crewsync.core.exceptions import ValidationError
from crewsync.models.assignment import AssignedPersonnel
from crewsync.models.company import Company, Job
from crewsync.models.shift import Shift
from crewsync.utils.roles import describe
from crewsync.utils.time_utils import as_utc


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    def __post_init__(self):
        if as_utc(self.end) <= as_utc(self.start):
            raise ValidationError(
                "Time window must end after it starts",
                errors=[{"field": "end", "message": "end must be after start"}],
            )


@dataclass
class Conflict:
    assignment_id: uuid.UUID
    shift_id: uuid.UUID
    job_name: str
    company_name: str
    role_code: str
    role_name: str
    status: str
    location: str | None
    start_time: datetime
    end_time: datetime

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ConflictReport:
    user_id: uuid.UUID
    window: TimeWindow
    conflicts: list[Conflict]

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0


async def find_conflicts(
    db: AsyncSession,
    user_id: uuid.UUID,
    window: TimeWindow,
    exclude_shift_id: uuid.UUID | None = None,
) -> list[Conflict]:
    start, end = as_utc(window.start), as_utc(window.end)
    conditions = [
        AssignedPersonnel.user_id == user_id,
        Shift.start_time < end,
        Shift.end_time > start,
    ]
    if exclude_shift_id is not None:
        conditions.append(Shift.id != exclude_shift_id)

    result = await db.execute(
        select(AssignedPersonnel, Shift, Job.name, Job.location, Company.name)
        .join(Shift, AssignedPersonnel.shift_id == Shift.id)
        .join(Job, Shift.job_id == Job.id)
        .join(Company, Job.company_id == Company.id)
        .where(*conditions)
        .order_by(Shift.start_time)
    )

    conflicts = []
    for assignment, shift, job_name, job_location, company_name in result.all():
        conflicts.append(Conflict(
            assignment_id=assignment.id,
            shift_id=shift.id,
            job_name=job_name,
            company_name=company_name,
            role_code=assignment.role_code,
            role_name=describe(assignment.role_code).name,
            status=assignment.status,
            location=shift.location or job_location,
            start_time=as_utc(shift.start_time),
            end_time=as_utc(shift.end_time),
        ))
    return conflicts


async def check_shift_conflicts(db: AsyncSession, user_id: uuid.UUID, shift: Shift) -> ConflictReport:
    """Konflikte für einen Kandidaten-Einsatz auf ``shift`` (die Schicht selbst ausgenommen)."""
    window = TimeWindow(shift.start_time, shift.end_time)
    conflicts = await find_conflicts(db, user_id, window, exclude_shift_id=shift.id)
    return ConflictReport(user_id=user_id, window=window, conflicts=conflicts)
