"""
Abgleich einer Schicht mit importierten Worker-Datensätzen (CSV / Sheets).

Der Import ersetzt Soll-Besetzung, Einsätze und Zeiteinträge der Schicht
vollständig und atomar. Vorher wird der ganze Stapel geprüft; alle Fehler
kommen gesammelt in einer ValidationError zurück, damit der Aufrufer den
Stapel in einem Durchgang korrigieren kann.

Ein fehlender Crew Chief wird nicht erfunden, sondern in der Zusammenfassung
markiert.
"""
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from dateutil.parser import isoparse
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from crewsync.core.config import settings
from crewsync.core.database import run_in_transaction
from crewsync.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from crewsync.models.assignment import AssignedPersonnel, TimeEntry, WorkerStatus
from crewsync.models.shift import Shift, ShiftStatus
from crewsync.models.timesheet import Timesheet, TimesheetStatus
from crewsync.models.user import User
from crewsync.services.audit_service import write_audit
from crewsync.services.requirement_service import compute_requirements, replace_requirements
from crewsync.utils.roles import ROLE_ORDER, RoleCode, is_valid_role
from crewsync.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

# Solange das Timesheet in der Freigabe steckt, darf der Import nichts ersetzen
LOCKED_TIMESHEET_STATES = (
    TimesheetStatus.PENDING_COMPANY_APPROVAL.value,
    TimesheetStatus.PENDING_MANAGER_APPROVAL.value,
    TimesheetStatus.COMPLETED.value,
)


@dataclass
class ImportRecord:
    """Ein Worker-Datensatz, wie ihn der Import-Parser liefert (noch ungeprüft)."""
    user_id: Any
    role_code: Any
    clock_in_time: Any = None
    clock_out_time: Any = None
    entry_number: Any = None


@dataclass
class ValidRecord:
    user_id: uuid.UUID
    role_code: RoleCode
    clock_in: datetime | None
    clock_out: datetime | None
    entry_number: int | None

    @property
    def has_clock_data(self) -> bool:
        return self.clock_in is not None


@dataclass
class SyncSummary:
    shift_id: uuid.UUID
    requirements: dict[str, int] = field(default_factory=dict)
    requirements_written: int = 0
    personnel_written: int = 0
    time_entries_created: int = 0
    missing_crew_chief: bool = False

    def to_dict(self) -> dict:
        return {
            "shift_id": str(self.shift_id),
            "requirements": self.requirements,
            "requirements_written": self.requirements_written,
            "personnel_written": self.personnel_written,
            "time_entries_created": self.time_entries_created,
            "missing_crew_chief": self.missing_crew_chief,
        }


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError("not a timestamp")
    return as_utc(isoparse(value.strip()))


def _parse_user_id(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def validate_import_records(
    records: Iterable[ImportRecord],
    known_user_ids: set[uuid.UUID] | None = None,
) -> list[ValidRecord]:
    """
    Prüft einen kompletten Import-Stapel und liefert die normalisierten Datensätze.

    Alle Fehler aller Datensätze werden gesammelt (``index`` ist die 0-basierte
    Position) und als ein ValidationError geworfen. ``known_user_ids`` ist, wenn
    angegeben, die Menge der existierenden Benutzer.
    """
    errors: list[dict] = []
    valid: list[tuple[int, ValidRecord]] = []

    def error(index: int, field_name: str, message: str) -> None:
        errors.append({"index": index, "field": field_name, "message": message})

    for index, record in enumerate(records):
        count_before = len(errors)

        user_id = None
        try:
            user_id = _parse_user_id(record.user_id)
        except (TypeError, ValueError):
            error(index, "user_id", "invalid or missing user id")
        if user_id is not None and known_user_ids is not None and user_id not in known_user_ids:
            error(index, "user_id", f"user {user_id} does not exist")

        role_code = getattr(record.role_code, "value", record.role_code)
        if not is_valid_role(role_code):
            error(index, "role_code", f"unknown role code {role_code!r}; must be one of "
                                      f"{', '.join(c.value for c in ROLE_ORDER)}")

        clock_in = clock_out = None
        if record.clock_in_time not in (None, ""):
            try:
                clock_in = _parse_timestamp(record.clock_in_time)
            except (TypeError, ValueError, OverflowError):
                error(index, "clock_in_time", "invalid timestamp")
        if record.clock_out_time not in (None, ""):
            try:
                clock_out = _parse_timestamp(record.clock_out_time)
            except (TypeError, ValueError, OverflowError):
                error(index, "clock_out_time", "invalid timestamp")
            if record.clock_in_time in (None, ""):
                error(index, "clock_out_time", "clock out without clock in")

        entry_number = record.entry_number
        if entry_number is not None and (
            isinstance(entry_number, bool) or not isinstance(entry_number, int) or entry_number < 1
        ):
            error(index, "entry_number", "entry number must be a positive integer")
        elif entry_number is not None and entry_number > settings.MAX_TIME_ENTRIES_PER_ASSIGNMENT:
            error(index, "entry_number",
                  f"entry number must not exceed {settings.MAX_TIME_ENTRIES_PER_ASSIGNMENT}")

        if len(errors) == count_before:
            valid.append((index, ValidRecord(
                user_id=user_id,
                role_code=RoleCode(role_code),
                clock_in=clock_in,
                clock_out=clock_out,
                entry_number=entry_number,
            )))

    # Regeln über mehrere Datensätze desselben (Worker, Rolle)-Paares
    by_pair: dict[tuple, list[tuple[int, ValidRecord]]] = defaultdict(list)
    for index, rec in valid:
        if rec.has_clock_data:
            by_pair[(rec.user_id, rec.role_code)].append((index, rec))
    for (user_id, role_code), items in by_pair.items():
        seen_numbers: set[int] = set()
        open_seen = False
        for index, rec in items:
            if rec.entry_number is not None:
                if rec.entry_number in seen_numbers:
                    error(index, "entry_number",
                          f"duplicate entry number {rec.entry_number} for user {user_id} as {role_code.value}")
                seen_numbers.add(rec.entry_number)
            if rec.clock_out is None:
                if open_seen:
                    error(index, "clock_out_time",
                          f"more than one open time entry for user {user_id} as {role_code.value}")
                open_seen = True
        limit = settings.MAX_TIME_ENTRIES_PER_ASSIGNMENT
        if len(items) > limit:
            error(items[limit][0], "entry_number",
                  f"more than {limit} time entries for user {user_id} as {role_code.value}")

    if errors:
        raise ValidationError(f"Import batch has {len(errors)} error(s)", errors=errors)
    return [rec for _, rec in valid]


def _number_entries(records: list[ValidRecord]) -> dict[int, int]:
    """Vergibt fehlende Eintragsnummern: kleinste freie Nummer je Paar, in Datensatz-Reihenfolge."""
    used: dict[tuple, set[int]] = defaultdict(set)
    for rec in records:
        if rec.has_clock_data and rec.entry_number is not None:
            used[(rec.user_id, rec.role_code)].add(rec.entry_number)
    numbers: dict[int, int] = {}
    for pos, rec in enumerate(records):
        if not rec.has_clock_data:
            continue
        if rec.entry_number is not None:
            numbers[pos] = rec.entry_number
            continue
        taken = used[(rec.user_id, rec.role_code)]
        n = 1
        while n in taken:
            n += 1
        taken.add(n)
        numbers[pos] = n
    return numbers


def _derive_status(entries: list[TimeEntry]) -> WorkerStatus:
    if any(e.is_active for e in entries):
        return WorkerStatus.CLOCKED_IN
    if entries:
        return WorkerStatus.CLOCKED_OUT
    return WorkerStatus.ASSIGNED


async def sync_shift_from_import(
    db: AsyncSession,
    shift_id: uuid.UUID,
    records: list[ImportRecord],
    *,
    overwrite_existing: bool = True,
    actor: User | None = None,
) -> SyncSummary:
    """
    Ersetzt Soll-Besetzung, Einsätze und Zeiteinträge der Schicht durch den
    importierten Stapel, alles in einer Transaktion. Zweimal mit demselben
    Stapel ausgeführt ergibt denselben Endstand.
    """
    records = list(records)

    async def _op() -> SyncSummary:
        shift = await db.get(Shift, shift_id)
        if shift is None:
            raise NotFoundError("Shift", shift_id)

        referenced = set()
        for rec in records:
            try:
                referenced.add(_parse_user_id(rec.user_id))
            except (TypeError, ValueError):
                pass  # wird in validate_import_records gemeldet
        known: set[uuid.UUID] = set()
        if referenced:
            result = await db.execute(select(User.id).where(User.id.in_(referenced)))
            known = set(result.scalars().all())
        valid = validate_import_records(records, known_user_ids=known)

        ts_result = await db.execute(select(Timesheet.status).where(Timesheet.shift_id == shift_id))
        ts_status = ts_result.scalar_one_or_none()
        if ts_status in LOCKED_TIMESHEET_STATES:
            raise InvalidStateError(
                "Cannot import into a shift whose timesheet is in approval or completed",
                expected=f"{TimesheetStatus.DRAFT.value} or {TimesheetStatus.REJECTED.value}",
                actual=ts_status,
            )

        existing = await db.execute(
            select(AssignedPersonnel.id).where(AssignedPersonnel.shift_id == shift_id)
        )
        existing_ids = list(existing.scalars().all())
        if existing_ids and not overwrite_existing:
            raise InvalidStateError(
                "Shift already has assigned personnel; set overwrite_existing to replace it",
                expected="no assigned personnel", actual=len(existing_ids),
            )

        # 1. Soll-Besetzung komplett ersetzen
        counts = compute_requirements(valid)
        requirement_rows = await replace_requirements(db, shift_id, counts)

        # 2. Einsätze (und ihre Zeiteinträge) komplett ersetzen
        if existing_ids:
            await db.execute(delete(TimeEntry).where(TimeEntry.assigned_personnel_id.in_(existing_ids)))
            await db.execute(delete(AssignedPersonnel).where(AssignedPersonnel.shift_id == shift_id))

        now = utcnow()
        assignments: dict[tuple, AssignedPersonnel] = {}
        for rec in valid:
            key = (rec.user_id, rec.role_code)
            if key not in assignments:
                assignment = AssignedPersonnel(
                    shift_id=shift_id,
                    user_id=rec.user_id,
                    role_code=rec.role_code.value,
                    status=WorkerStatus.ASSIGNED.value,
                    assigned_at=now,
                )
                db.add(assignment)
                assignments[key] = assignment
        await db.flush()

        # 3. Zeiteinträge aus den Stempeldaten
        entries_by_pair: dict[tuple, list[TimeEntry]] = defaultdict(list)
        numbers = _number_entries(valid)
        for pos, rec in enumerate(valid):
            if not rec.has_clock_data:
                continue
            key = (rec.user_id, rec.role_code)
            entry = TimeEntry(
                assigned_personnel_id=assignments[key].id,
                entry_number=numbers[pos],
                clock_in=rec.clock_in,
                clock_out=rec.clock_out,
                is_active=rec.clock_out is None,
            )
            db.add(entry)
            entries_by_pair[key].append(entry)

        for key, assignment in assignments.items():
            assignment.status = _derive_status(entries_by_pair.get(key, [])).value

        if shift.status == ShiftStatus.PENDING.value:
            shift.status = ShiftStatus.ACTIVE.value
        await db.flush()

        summary = SyncSummary(
            shift_id=shift_id,
            requirements={code.value: counts[code] for code in ROLE_ORDER},
            requirements_written=len(requirement_rows),
            personnel_written=len(assignments),
            time_entries_created=sum(len(v) for v in entries_by_pair.values()),
            missing_crew_chief=not any(rec.role_code == RoleCode.CREW_CHIEF for rec in valid),
        )
        write_audit(db, entity_type="shift", entity_id=shift_id, action="import_sync",
                    user_id=actor.id if actor else None,
                    old_values={"assigned_personnel": len(existing_ids)},
                    new_values=summary.to_dict())
        return summary

    summary = await run_in_transaction(db, _op)
    if summary.missing_crew_chief:
        logger.warning("Import for shift %s has no crew chief record - assign one manually", shift_id)
    logger.info("Synced shift %s: %d requirements, %d personnel, %d time entries",
                shift_id, summary.requirements_written, summary.personnel_written, summary.time_entries_created)
    return summary
