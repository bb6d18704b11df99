"""
Einsätze (AssignedPersonnel) einer Schicht und ihr Status-Lebenszyklus.

    Assigned ──clock_in──▶ ClockedIn ◀──end_break── OnBreak
        │                    │  ▲  └──start_break──▶
        │                    │  └──clock_in (Rückkehr)──┐
        │                    └──clock_out──▶ ClockedOut ┘
        └──no_show──▶ NoShow
    jeder Zustand außer ShiftEnded/NoShow ──end_shift──▶ ShiftEnded

Alle erlaubten Übergänge stehen in WORKER_TRANSITIONS; next_worker_status() ist
die einzige Stelle, die sie prüft. Pausen schließen den offenen Zeiteintrag und
Pausenende öffnet den nächsten – so bleibt höchstens ein Eintrag aktiv.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crewsync.core.database import run_in_transaction
from crewsync.core.exceptions import InvalidStateError, NotFoundError
from crewsync.models.assignment import AssignedPersonnel, TimeEntry, WorkerStatus
from crewsync.models.shift import Shift, ShiftStatus
from crewsync.models.timesheet import Timesheet, TimesheetStatus
from crewsync.models.user import User
from crewsync.services import time_entry_service
from crewsync.services.audit_service import write_audit
from crewsync.services.conflict_service import Conflict, check_shift_conflicts
from crewsync.utils.roles import parse_role, sort_by_role
from crewsync.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class WorkerEvent(str, Enum):
    CLOCK_IN = "clock_in"
    START_BREAK = "start_break"
    END_BREAK = "end_break"
    CLOCK_OUT = "clock_out"
    END_SHIFT = "end_shift"
    NO_SHOW = "no_show"


WORKER_TRANSITIONS: dict[tuple[WorkerStatus, WorkerEvent], WorkerStatus] = {
    (WorkerStatus.ASSIGNED, WorkerEvent.CLOCK_IN): WorkerStatus.CLOCKED_IN,
    (WorkerStatus.CLOCKED_OUT, WorkerEvent.CLOCK_IN): WorkerStatus.CLOCKED_IN,
    (WorkerStatus.CLOCKED_IN, WorkerEvent.START_BREAK): WorkerStatus.ON_BREAK,
    (WorkerStatus.ON_BREAK, WorkerEvent.END_BREAK): WorkerStatus.CLOCKED_IN,
    (WorkerStatus.CLOCKED_IN, WorkerEvent.CLOCK_OUT): WorkerStatus.CLOCKED_OUT,
    (WorkerStatus.ASSIGNED, WorkerEvent.NO_SHOW): WorkerStatus.NO_SHOW,
    (WorkerStatus.ASSIGNED, WorkerEvent.END_SHIFT): WorkerStatus.SHIFT_ENDED,
    (WorkerStatus.CLOCKED_IN, WorkerEvent.END_SHIFT): WorkerStatus.SHIFT_ENDED,
    (WorkerStatus.ON_BREAK, WorkerEvent.END_SHIFT): WorkerStatus.SHIFT_ENDED,
    (WorkerStatus.CLOCKED_OUT, WorkerEvent.END_SHIFT): WorkerStatus.SHIFT_ENDED,
}


def next_worker_status(current: "WorkerStatus | str", event: WorkerEvent) -> WorkerStatus:
    current = WorkerStatus(current)
    try:
        return WORKER_TRANSITIONS[(current, event)]
    except KeyError:
        allowed = sorted(s.value for (s, e) in WORKER_TRANSITIONS if e == event)
        raise InvalidStateError(
            f"Cannot {event.value.replace('_', ' ')} a worker in status {current.value}",
            expected=allowed, actual=current.value, event=event.value,
        ) from None


@dataclass
class AssignmentResult:
    """Ergebnis von assign_worker: entweder ein neuer Einsatz oder die Konfliktliste."""
    assignment: AssignedPersonnel | None
    conflicts: list[Conflict] = field(default_factory=list)
    overridden: bool = False

    @property
    def created(self) -> bool:
        return self.assignment is not None


async def _get_shift(db: AsyncSession, shift_id: uuid.UUID) -> Shift:
    shift = await db.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError("Shift", shift_id)
    return shift


async def get_assignment(db: AsyncSession, assignment_id: uuid.UUID, shift_id: uuid.UUID | None = None) -> AssignedPersonnel:
    query = select(AssignedPersonnel).where(AssignedPersonnel.id == assignment_id)
    if shift_id is not None:
        query = query.where(AssignedPersonnel.shift_id == shift_id)
    result = await db.execute(query)
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFoundError("Assignment", assignment_id)
    return assignment


async def list_assignments(db: AsyncSession, shift_id: uuid.UUID) -> list[AssignedPersonnel]:
    await _get_shift(db, shift_id)
    result = await db.execute(
        select(AssignedPersonnel)
        .where(AssignedPersonnel.shift_id == shift_id)
        .order_by(AssignedPersonnel.assigned_at)
    )
    return sort_by_role(list(result.scalars().all()))


# ── Zuweisen / Entfernen ─────────────────────────────────────────────────────

async def assign_worker(
    db: AsyncSession,
    shift_id: uuid.UUID,
    user_id: uuid.UUID,
    role_code: str,
    *,
    override: bool = False,
    actor: User | None = None,
) -> AssignmentResult:
    """
    Teilt einen Mitarbeiter in einer Rolle auf die Schicht ein.

    Vor der Konfliktprüfung wird die Mitarbeiter-Zeile per UPDATE gesperrt,
    damit zwei gleichzeitige Einteilungen derselben Person nacheinander laufen
    (PostgreSQL: Zeilensperre, SQLite: Schreibsperre der Datenbank). Prüfung und
    Insert teilen sich eine Transaktion. Bei Konflikten ohne ``override`` wird
    nichts geschrieben. Die Soll-Besetzung begrenzt Einteilungen nicht.
    """
    role = parse_role(role_code)

    async def _op() -> AssignmentResult:
        # Sperre muss vor jedem Lesezugriff der Transaktion liegen
        locked = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(is_active=User.is_active)
            .execution_options(synchronize_session=False)
        )
        if locked.rowcount == 0:
            raise NotFoundError("User", user_id)
        shift = await _get_shift(db, shift_id)

        duplicate = await db.execute(
            select(AssignedPersonnel.id).where(
                AssignedPersonnel.shift_id == shift_id,
                AssignedPersonnel.user_id == user_id,
                AssignedPersonnel.role_code == role.value,
            )
        )
        if duplicate.scalar_one_or_none() is not None:
            raise InvalidStateError(
                "Worker is already assigned to this shift in that role",
                expected="no existing assignment", actual="assigned",
                user_id=str(user_id), role_code=role.value,
            )

        report = await check_shift_conflicts(db, user_id, shift)
        if report.has_conflicts and not override:
            logger.info("Assignment of user %s to shift %s blocked by %d conflict(s)",
                        user_id, shift_id, len(report.conflicts))
            return AssignmentResult(assignment=None, conflicts=report.conflicts)

        assignment = AssignedPersonnel(
            shift_id=shift_id,
            user_id=user_id,
            role_code=role.value,
            status=WorkerStatus.ASSIGNED.value,
            assigned_at=utcnow(),
        )
        db.add(assignment)
        await db.flush()
        write_audit(db, entity_type="assignment", entity_id=assignment.id, action="create",
                    user_id=actor.id if actor else None,
                    new_values={"shift_id": str(shift_id), "user_id": str(user_id),
                                "role_code": role.value, "override": report.has_conflicts})
        if report.has_conflicts:
            logger.warning("User %s assigned to shift %s despite %d conflict(s) (override)",
                           user_id, shift_id, len(report.conflicts))
        return AssignmentResult(assignment=assignment, conflicts=report.conflicts,
                                overridden=report.has_conflicts)

    return await run_in_transaction(db, _op)


async def unassign_worker(db: AsyncSession, assignment_id: uuid.UUID, *, actor: User | None = None) -> None:
    """
    Löscht einen Einsatz samt Zeiteinträgen endgültig.

    Abgelehnt, sobald erfasste Arbeit (ein geschlossener Eintrag) existiert und
    das Timesheet der Schicht nicht mehr in DRAFT ist.
    """
    async def _op() -> None:
        assignment = await get_assignment(db, assignment_id)
        entries = await time_entry_service.list_entries(db, assignment.id)
        has_closed = any(e.clock_out is not None for e in entries)
        if has_closed:
            ts_result = await db.execute(
                select(Timesheet.status).where(Timesheet.shift_id == assignment.shift_id)
            )
            ts_status = ts_result.scalar_one_or_none()
            if ts_status is not None and ts_status != TimesheetStatus.DRAFT.value:
                raise InvalidStateError(
                    "Cannot remove a worker whose recorded time is in the approval pipeline",
                    expected=TimesheetStatus.DRAFT.value, actual=ts_status,
                    assignment_id=str(assignment_id),
                )

        await db.execute(delete(TimeEntry).where(TimeEntry.assigned_personnel_id == assignment.id))
        await db.execute(delete(AssignedPersonnel).where(AssignedPersonnel.id == assignment.id))
        write_audit(db, entity_type="assignment", entity_id=assignment_id, action="delete",
                    user_id=actor.id if actor else None,
                    old_values={"shift_id": str(assignment.shift_id), "user_id": str(assignment.user_id),
                                "role_code": assignment.role_code, "status": assignment.status,
                                "time_entries": len(entries)})

    await run_in_transaction(db, _op)


# ── Stempeln ─────────────────────────────────────────────────────────────────

async def _apply(db: AsyncSession, assignment: AssignedPersonnel, event: WorkerEvent) -> WorkerStatus:
    new_status = next_worker_status(assignment.status, event)
    old_status = assignment.status
    assignment.status = new_status.value
    logger.info("Assignment %s: %s -> %s", assignment.id, old_status, new_status.value)
    return new_status


async def clock_in(db: AsyncSession, assignment_id: uuid.UUID, at: datetime | None = None) -> TimeEntry:
    async def _op() -> TimeEntry:
        assignment = await get_assignment(db, assignment_id)
        await _apply(db, assignment, WorkerEvent.CLOCK_IN)
        entry = await time_entry_service.open_entry(db, assignment, at or utcnow())
        await _mark_shift_in_progress(db, assignment.shift_id)
        return entry

    return await run_in_transaction(db, _op)


async def clock_out(db: AsyncSession, assignment_id: uuid.UUID, at: datetime | None = None) -> TimeEntry:
    async def _op() -> TimeEntry:
        assignment = await get_assignment(db, assignment_id)
        # ohne offenen Eintrag: NoActiveEntryError, unabhängig vom Status
        entry = await time_entry_service.close_active_entry(db, assignment, at or utcnow())
        await _apply(db, assignment, WorkerEvent.CLOCK_OUT)
        return entry

    return await run_in_transaction(db, _op)


async def start_break(db: AsyncSession, assignment_id: uuid.UUID, at: datetime | None = None) -> TimeEntry:
    async def _op() -> TimeEntry:
        assignment = await get_assignment(db, assignment_id)
        await _apply(db, assignment, WorkerEvent.START_BREAK)
        return await time_entry_service.close_active_entry(db, assignment, at or utcnow())

    return await run_in_transaction(db, _op)


async def end_break(db: AsyncSession, assignment_id: uuid.UUID, at: datetime | None = None) -> TimeEntry:
    async def _op() -> TimeEntry:
        assignment = await get_assignment(db, assignment_id)
        await _apply(db, assignment, WorkerEvent.END_BREAK)
        return await time_entry_service.open_entry(db, assignment, at or utcnow())

    return await run_in_transaction(db, _op)


async def mark_no_show(db: AsyncSession, assignment_id: uuid.UUID) -> AssignedPersonnel:
    async def _op() -> AssignedPersonnel:
        assignment = await get_assignment(db, assignment_id)
        if await time_entry_service.list_entries(db, assignment.id):
            raise InvalidStateError(
                "Cannot mark as no-show - worker has already started their shift",
                expected="no time entries", actual="time entries recorded",
            )
        await _apply(db, assignment, WorkerEvent.NO_SHOW)
        return assignment

    return await run_in_transaction(db, _op)


async def _force_end(db: AsyncSession, assignment: AssignedPersonnel, at: datetime) -> TimeEntry | None:
    """Beendet einen Einsatz; ein noch offener Eintrag wird zu ``at`` geschlossen."""
    await _apply(db, assignment, WorkerEvent.END_SHIFT)
    if await time_entry_service.get_active_entry(db, assignment.id) is None:
        return None
    entry = await time_entry_service.close_active_entry(db, assignment, at)
    logger.warning("Force-closed open time entry #%d of assignment %s at %s",
                   entry.entry_number, assignment.id, as_utc(at).isoformat())
    return entry


async def end_worker_shift(db: AsyncSession, assignment_id: uuid.UUID, at: datetime | None = None) -> AssignedPersonnel:
    async def _op() -> AssignedPersonnel:
        assignment = await get_assignment(db, assignment_id)
        await _force_end(db, assignment, at or utcnow())
        return assignment

    return await run_in_transaction(db, _op)


@dataclass
class EndShiftResult:
    shift_id: uuid.UUID
    ended: list[uuid.UUID] = field(default_factory=list)
    skipped: list[uuid.UUID] = field(default_factory=list)
    force_closed_entries: int = 0


async def end_shift(db: AsyncSession, shift_id: uuid.UUID, ended_at: datetime | None = None) -> EndShiftResult:
    """
    Beendet die ganze Schicht: jeder Einsatz geht nach ShiftEnded, offene
    Einträge werden zum Schichtende geschlossen. Niemand bleibt eingestempelt.
    """
    async def _op() -> EndShiftResult:
        shift = await _get_shift(db, shift_id)
        close_at = ended_at or shift.end_time
        result = await db.execute(select(AssignedPersonnel).where(AssignedPersonnel.shift_id == shift_id))
        outcome = EndShiftResult(shift_id=shift_id)
        for assignment in result.scalars().all():
            if assignment.status in (WorkerStatus.SHIFT_ENDED.value, WorkerStatus.NO_SHOW.value):
                outcome.skipped.append(assignment.id)
                continue
            if await _force_end(db, assignment, close_at) is not None:
                outcome.force_closed_entries += 1
            outcome.ended.append(assignment.id)
        shift.status = ShiftStatus.COMPLETED.value
        return outcome

    return await run_in_transaction(db, _op)


async def _mark_shift_in_progress(db: AsyncSession, shift_id: uuid.UUID) -> None:
    shift = await _get_shift(db, shift_id)
    if shift.status in (ShiftStatus.PENDING.value, ShiftStatus.ACTIVE.value):
        shift.status = ShiftStatus.IN_PROGRESS.value
