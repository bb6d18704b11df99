"""
Timesheet-Freigabe als Zustandsmaschine.

    DRAFT ──submit──▶ PENDING_COMPANY_APPROVAL ──approve_company──▶ PENDING_MANAGER_APPROVAL ──approve_manager──▶ COMPLETED
                              │                                              │
                              └──────────────reject──────────────┬───────────┘
                                                                 ▼
                         PENDING_COMPANY_APPROVAL ◀──resubmit── REJECTED

Prüfreihenfolge jeder Aktion: Zustand (transition), dann Berechtigung, dann
Nutzdaten (Signatur / Begründung). Der Statuswechsel selbst ist ein bedingtes
UPDATE auf den gelesenen Status; verliert ein paralleler Aufrufer das Rennen,
gibt es InvalidTransitionError statt eines doppelten Übergangs.

Audit-Felder (…_at/_by/Signatur) werden nie geleert, nur durch einen neuen
Durchlauf ergänzt.
"""
import logging
import uuid
from enum import Enum

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crewsync.core.database import run_in_transaction
from crewsync.core.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from crewsync.models.assignment import AssignedPersonnel, TimeEntry
from crewsync.models.shift import Shift, ShiftStatus
from crewsync.models.timesheet import Timesheet, TimesheetEntry, TimesheetStatus
from crewsync.models.user import User
from crewsync.services import permissions
from crewsync.services.audit_service import write_audit
from crewsync.utils.roles import ROLE_ORDER, parse_role
from crewsync.utils.time_utils import hours_between, utcnow

logger = logging.getLogger(__name__)


class TimesheetEvent(str, Enum):
    SUBMIT = "submit"
    APPROVE_COMPANY = "approve_company"
    APPROVE_MANAGER = "approve_manager"
    REJECT = "reject"
    RESUBMIT = "resubmit"


TIMESHEET_TRANSITIONS: dict[tuple[TimesheetStatus, TimesheetEvent], TimesheetStatus] = {
    (TimesheetStatus.DRAFT, TimesheetEvent.SUBMIT): TimesheetStatus.PENDING_COMPANY_APPROVAL,
    (TimesheetStatus.PENDING_COMPANY_APPROVAL, TimesheetEvent.APPROVE_COMPANY): TimesheetStatus.PENDING_MANAGER_APPROVAL,
    (TimesheetStatus.PENDING_MANAGER_APPROVAL, TimesheetEvent.APPROVE_MANAGER): TimesheetStatus.COMPLETED,
    (TimesheetStatus.PENDING_COMPANY_APPROVAL, TimesheetEvent.REJECT): TimesheetStatus.REJECTED,
    (TimesheetStatus.PENDING_MANAGER_APPROVAL, TimesheetEvent.REJECT): TimesheetStatus.REJECTED,
    (TimesheetStatus.REJECTED, TimesheetEvent.RESUBMIT): TimesheetStatus.PENDING_COMPANY_APPROVAL,
}


def transition(current: "TimesheetStatus | str", event: TimesheetEvent) -> TimesheetStatus:
    """Einzige Quelle erlaubter Timesheet-Übergänge; alles andere wirft."""
    current = TimesheetStatus(current)
    try:
        return TIMESHEET_TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(current, event) from None


# ── Laden ────────────────────────────────────────────────────────────────────

async def get_timesheet(db: AsyncSession, timesheet_id: uuid.UUID) -> Timesheet:
    timesheet = await db.get(Timesheet, timesheet_id)
    if timesheet is None:
        raise NotFoundError("Timesheet", timesheet_id)
    return timesheet


async def _find_for_shift(db: AsyncSession, shift_id: uuid.UUID) -> Timesheet | None:
    result = await db.execute(select(Timesheet).where(Timesheet.shift_id == shift_id))
    return result.scalar_one_or_none()


async def _find_or_add(db: AsyncSession, shift_id: uuid.UUID) -> Timesheet:
    """Timesheet der Schicht; ein neues DRAFT entsteht in der Transaktion des Aufrufers."""
    if await db.get(Shift, shift_id) is None:
        raise NotFoundError("Shift", shift_id)
    timesheet = await _find_for_shift(db, shift_id)
    if timesheet is None:
        timesheet = Timesheet(shift_id=shift_id, status=TimesheetStatus.DRAFT.value, revision=1)
        db.add(timesheet)
        await db.flush()
        logger.info("Created DRAFT timesheet %s for shift %s", timesheet.id, shift_id)
    return timesheet


async def get_or_create_timesheet(db: AsyncSession, shift_id: uuid.UUID) -> Timesheet:
    """Liefert das Timesheet der Schicht; legt es bei Bedarf in DRAFT an."""
    return await run_in_transaction(db, lambda: _find_or_add(db, shift_id))


async def list_snapshot(db: AsyncSession, timesheet_id: uuid.UUID) -> list[TimesheetEntry]:
    result = await db.execute(
        select(TimesheetEntry).where(TimesheetEntry.timesheet_id == timesheet_id)
    )
    entries = list(result.scalars().all())
    return sorted(entries, key=lambda e: (ROLE_ORDER.index(parse_role(e.role_code)), e.user_name, e.entry_number))


# ── Interne Helfer ───────────────────────────────────────────────────────────

async def _shift_entries(db: AsyncSession, shift_id: uuid.UUID):
    result = await db.execute(
        select(TimeEntry, AssignedPersonnel.user_id, AssignedPersonnel.role_code, User.name)
        .join(AssignedPersonnel, TimeEntry.assigned_personnel_id == AssignedPersonnel.id)
        .join(User, AssignedPersonnel.user_id == User.id)
        .where(AssignedPersonnel.shift_id == shift_id)
        .order_by(User.name, TimeEntry.entry_number)
    )
    return result.all()


def _check_recorded_work(rows) -> None:
    open_count = sum(1 for entry, *_ in rows if entry.clock_out is None)
    if open_count:
        raise InvalidStateError(
            "Cannot submit timesheet - workers have not clocked out yet",
            expected="all time entries closed", actual=f"{open_count} open",
        )
    if not rows:
        raise InvalidStateError(
            "Cannot submit timesheet - no recorded work for this shift",
            expected="at least one closed time entry", actual="none",
        )


async def _snapshot_entries(db: AsyncSession, timesheet: Timesheet, rows) -> int:
    await db.execute(delete(TimesheetEntry).where(TimesheetEntry.timesheet_id == timesheet.id))
    for entry, user_id, role_code, user_name in rows:
        db.add(TimesheetEntry(
            timesheet_id=timesheet.id,
            user_id=user_id,
            user_name=user_name,
            role_code=role_code,
            entry_number=entry.entry_number,
            clock_in=entry.clock_in,
            clock_out=entry.clock_out,
            hours=round(hours_between(entry.clock_in, entry.clock_out), 2),
        ))
    return len(rows)


async def _compare_and_set(
    db: AsyncSession,
    timesheet: Timesheet,
    event: TimesheetEvent,
    actor: User,
    **values,
) -> Timesheet:
    expected = TimesheetStatus(timesheet.status)
    new_status = transition(expected, event)
    result = await db.execute(
        update(Timesheet)
        .where(Timesheet.id == timesheet.id, Timesheet.status == expected.value)
        .values(status=new_status.value, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Jemand war schneller – aktuellen Stand lesen und ablehnen
        await db.refresh(timesheet)
        raise InvalidTransitionError(
            timesheet.status, event,
            f"Timesheet changed concurrently (now {timesheet.status}); '{event.value}' not applied",
        )
    write_audit(
        db, entity_type="timesheet", entity_id=timesheet.id, action=event.value,
        user_id=actor.id,
        old_values={"status": expected.value},
        new_values={"status": new_status.value},
    )
    await db.refresh(timesheet)
    logger.info("Timesheet %s: %s -> %s by %s", timesheet.id, expected.value, new_status.value, actor.id)
    return timesheet


def _require_text(value: str | None, field: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(message, errors=[{"field": field, "message": "must not be empty"}])
    return value


# ── Übergänge ────────────────────────────────────────────────────────────────

async def submit(db: AsyncSession, shift_id: uuid.UUID, actor: User) -> Timesheet:
    """Reicht das Timesheet der Schicht ein; scheitert das, bleibt auch kein neues DRAFT zurück."""
    async def _op() -> Timesheet:
        timesheet = await _find_or_add(db, shift_id)
        transition(timesheet.status, TimesheetEvent.SUBMIT)
        if not await permissions.can_manage_shift(db, actor, shift_id):
            raise UnauthorizedError("Only an administrator or the shift's crew chief can submit the timesheet")
        rows = await _shift_entries(db, shift_id)
        _check_recorded_work(rows)
        await _snapshot_entries(db, timesheet, rows)
        return await _compare_and_set(
            db, timesheet, TimesheetEvent.SUBMIT, actor,
            submitted_at=utcnow(), submitted_by=actor.id,
        )

    return await run_in_transaction(db, _op)


async def resubmit(db: AsyncSession, timesheet_id: uuid.UUID, actor: User) -> Timesheet:
    """
    Schickt ein abgelehntes Timesheet ausdrücklich erneut in die Freigabe.

    Nimmt einen frischen Snapshot der Einträge und erhöht ``revision``; frühere
    Freigabe- und Ablehnungsfelder bleiben stehen.
    """
    async def _op() -> Timesheet:
        timesheet = await get_timesheet(db, timesheet_id)
        transition(timesheet.status, TimesheetEvent.RESUBMIT)
        if not await permissions.can_manage_shift(db, actor, timesheet.shift_id):
            raise UnauthorizedError("Only an administrator or the shift's crew chief can resubmit the timesheet")
        rows = await _shift_entries(db, timesheet.shift_id)
        _check_recorded_work(rows)
        await _snapshot_entries(db, timesheet, rows)
        return await _compare_and_set(
            db, timesheet, TimesheetEvent.RESUBMIT, actor,
            submitted_at=utcnow(), submitted_by=actor.id,
            revision=Timesheet.revision + 1,
        )

    return await run_in_transaction(db, _op)


async def approve_as_company(
    db: AsyncSession,
    timesheet_id: uuid.UUID,
    actor: User,
    signature: str | None,
    notes: str | None = None,
) -> Timesheet:
    async def _op() -> Timesheet:
        timesheet = await get_timesheet(db, timesheet_id)
        transition(timesheet.status, TimesheetEvent.APPROVE_COMPANY)
        if not await permissions.can_approve_as_company(db, actor, timesheet.shift_id):
            raise UnauthorizedError("Not allowed to approve this timesheet for the company")
        _require_text(signature, "signature", "Company approval requires a signature")
        return await _compare_and_set(
            db, timesheet, TimesheetEvent.APPROVE_COMPANY, actor,
            company_approved_at=utcnow(), company_approved_by=actor.id,
            company_signature=signature, company_notes=notes,
        )

    return await run_in_transaction(db, _op)


async def approve_as_manager(
    db: AsyncSession,
    timesheet_id: uuid.UUID,
    actor: User,
    signature: str | None,
    notes: str | None = None,
) -> Timesheet:
    async def _op() -> Timesheet:
        timesheet = await get_timesheet(db, timesheet_id)
        transition(timesheet.status, TimesheetEvent.APPROVE_MANAGER)
        if not permissions.is_admin(actor):
            raise UnauthorizedError("Only administrators can give final approval")
        _require_text(signature, "signature", "Manager approval requires a signature")
        timesheet = await _compare_and_set(
            db, timesheet, TimesheetEvent.APPROVE_MANAGER, actor,
            manager_approved_at=utcnow(), manager_approved_by=actor.id,
            manager_signature=signature, manager_notes=notes,
        )
        # Endfreigabe schließt auch die Schicht ab
        await db.execute(
            update(Shift)
            .where(Shift.id == timesheet.shift_id)
            .values(status=ShiftStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        logger.info("Shift %s completed by final approval of timesheet %s", timesheet.shift_id, timesheet.id)
        return timesheet

    return await run_in_transaction(db, _op)


async def reject(db: AsyncSession, timesheet_id: uuid.UUID, actor: User, reason: str | None) -> Timesheet:
    async def _op() -> Timesheet:
        timesheet = await get_timesheet(db, timesheet_id)
        transition(timesheet.status, TimesheetEvent.REJECT)
        if timesheet.status == TimesheetStatus.PENDING_MANAGER_APPROVAL.value:
            allowed = permissions.is_admin(actor)
        else:
            allowed = await permissions.can_approve_as_company(db, actor, timesheet.shift_id)
        if not allowed:
            raise UnauthorizedError("Not allowed to reject this timesheet")
        _require_text(reason, "reason", "A rejection reason is required")
        return await _compare_and_set(
            db, timesheet, TimesheetEvent.REJECT, actor,
            rejected_at=utcnow(), rejected_by=actor.id, rejection_reason=reason.strip(),
        )

    return await run_in_transaction(db, _op)
