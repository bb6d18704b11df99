"""
Tests für services/assignment_service.py – Status-Lebenszyklus, Stempeln,
Zuweisen mit Konfliktprüfung und Entfernen.
"""
import asyncio
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from crewsync.core.database import Base
from crewsync.core.exceptions import (
    InvalidStateError, NoActiveEntryError, NotFoundError, UnknownRoleError,
)
from crewsync.models.assignment import AssignedPersonnel, TimeEntry, WorkerStatus
from crewsync.models.audit import AuditLog
from crewsync.models.company import Company, Job
from crewsync.models.shift import Shift, ShiftStatus
from crewsync.models.user import User, UserRole
from crewsync.services import assignment_service as svc
from crewsync.services import timesheet_service
from crewsync.services.assignment_service import WorkerEvent, next_worker_status
from crewsync.services.time_entry_service import list_entries
from crewsync.utils.time_utils import as_utc
from tests.conftest import at


async def _status(db, model, obj_id):
    result = await db.execute(select(model.status).where(model.id == obj_id))
    return result.scalar_one()


async def _active_count(db, assignment_id):
    result = await db.execute(
        select(func.count(TimeEntry.id)).where(
            TimeEntry.assigned_personnel_id == assignment_id, TimeEntry.is_active == True  # noqa: E712
        )
    )
    return result.scalar()


async def _assign(db, shift, user, role="SH", **kwargs):
    result = await svc.assign_worker(db, shift.id, user.id, role, **kwargs)
    assert result.created
    return result.assignment


# ── Transition table (pure) ───────────────────────────────────────────────────

@pytest.mark.parametrize("current,event,expected", [
    (WorkerStatus.ASSIGNED, WorkerEvent.CLOCK_IN, WorkerStatus.CLOCKED_IN),
    (WorkerStatus.CLOCKED_IN, WorkerEvent.START_BREAK, WorkerStatus.ON_BREAK),
    (WorkerStatus.ON_BREAK, WorkerEvent.END_BREAK, WorkerStatus.CLOCKED_IN),
    (WorkerStatus.CLOCKED_IN, WorkerEvent.CLOCK_OUT, WorkerStatus.CLOCKED_OUT),
    (WorkerStatus.CLOCKED_OUT, WorkerEvent.CLOCK_IN, WorkerStatus.CLOCKED_IN),
    (WorkerStatus.ASSIGNED, WorkerEvent.NO_SHOW, WorkerStatus.NO_SHOW),
    (WorkerStatus.ON_BREAK, WorkerEvent.END_SHIFT, WorkerStatus.SHIFT_ENDED),
    (WorkerStatus.CLOCKED_OUT, WorkerEvent.END_SHIFT, WorkerStatus.SHIFT_ENDED),
])
def test_legal_worker_transitions(current, event, expected):
    assert next_worker_status(current, event) is expected


@pytest.mark.parametrize("current,event", [
    (WorkerStatus.ASSIGNED, WorkerEvent.CLOCK_OUT),
    (WorkerStatus.ASSIGNED, WorkerEvent.START_BREAK),
    (WorkerStatus.ON_BREAK, WorkerEvent.CLOCK_OUT),
    (WorkerStatus.CLOCKED_IN, WorkerEvent.CLOCK_IN),
    (WorkerStatus.CLOCKED_IN, WorkerEvent.NO_SHOW),
    (WorkerStatus.SHIFT_ENDED, WorkerEvent.CLOCK_IN),
    (WorkerStatus.SHIFT_ENDED, WorkerEvent.END_SHIFT),
    (WorkerStatus.NO_SHOW, WorkerEvent.CLOCK_IN),
])
def test_illegal_worker_transitions_raise(current, event):
    with pytest.raises(InvalidStateError) as exc_info:
        next_worker_status(current, event)
    assert exc_info.value.actual == current.value


def test_transition_accepts_stored_string_status():
    assert next_worker_status("Assigned", WorkerEvent.CLOCK_IN) is WorkerStatus.CLOCKED_IN


# ── assign_worker ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_assign_clean_creates_assigned_row_and_audit(db, shift, worker, admin_user):
    result = await svc.assign_worker(db, shift.id, worker.id, "SH", actor=admin_user)
    assert result.created
    assert result.conflicts == []
    assert result.assignment.status == WorkerStatus.ASSIGNED.value

    audit = await db.execute(select(AuditLog).where(AuditLog.entity_type == "assignment"))
    log = audit.scalar_one()
    assert log.action == "create"
    assert log.user_id == admin_user.id


@pytest.mark.asyncio
async def test_assign_with_overlap_writes_nothing(db, make_shift, worker):
    shift_a = await make_shift(at(10), at(14))
    shift_b = await make_shift(at(13), at(17), location="Dock 3")
    await _assign(db, shift_a, worker)

    result = await svc.assign_worker(db, shift_b.id, worker.id, "FO")
    assert not result.created
    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.shift_id == shift_a.id
    assert conflict.job_name == "Spring Concert Load-In"
    assert conflict.company_name == "Stagecraft Events"
    assert conflict.role_name == "Stage Hand"

    count = await db.execute(
        select(func.count(AssignedPersonnel.id)).where(AssignedPersonnel.shift_id == shift_b.id)
    )
    assert count.scalar() == 0


@pytest.mark.asyncio
async def test_assign_with_override_writes_despite_conflict(db, make_shift, worker):
    shift_a = await make_shift(at(10), at(14))
    shift_b = await make_shift(at(13), at(17))
    await _assign(db, shift_a, worker)

    result = await svc.assign_worker(db, shift_b.id, worker.id, "SH", override=True)
    assert result.created
    assert result.overridden
    assert len(result.conflicts) == 1


@pytest.mark.asyncio
async def test_assign_touching_shift_is_not_a_conflict(db, make_shift, worker):
    shift_a = await make_shift(at(10), at(14))
    shift_c = await make_shift(at(14), at(18))
    await _assign(db, shift_a, worker)

    result = await svc.assign_worker(db, shift_c.id, worker.id, "SH")
    assert result.created
    assert result.conflicts == []


@pytest.mark.asyncio
async def test_assign_same_role_twice_rejected(db, shift, worker):
    await _assign(db, shift, worker)
    with pytest.raises(InvalidStateError):
        await svc.assign_worker(db, shift.id, worker.id, "SH")


@pytest.mark.asyncio
async def test_assign_second_role_on_same_shift_allowed(db, shift, worker):
    await _assign(db, shift, worker, "SH")
    result = await svc.assign_worker(db, shift.id, worker.id, "FO")
    assert result.created
    assert result.conflicts == []


@pytest.mark.asyncio
async def test_assign_is_not_capped_by_requirements(db, shift, worker, second_worker):
    # Soll ist nur Planungsgröße: 0 SH gefordert, trotzdem zwei zuweisbar
    await _assign(db, shift, worker, "SH")
    await _assign(db, shift, second_worker, "SH")


@pytest.mark.asyncio
async def test_assign_unknown_role(db, shift, worker):
    with pytest.raises(UnknownRoleError):
        await svc.assign_worker(db, shift.id, worker.id, "XX")


@pytest.mark.asyncio
async def test_assign_unknown_user_or_shift(db, shift, worker):
    shift_id, worker_id = shift.id, worker.id
    with pytest.raises(NotFoundError) as exc_info:
        await svc.assign_worker(db, shift_id, uuid.uuid4(), "SH")
    assert exc_info.value.entity == "User"
    with pytest.raises(NotFoundError) as exc_info:
        await svc.assign_worker(db, uuid.uuid4(), worker_id, "SH")
    assert exc_info.value.entity == "Shift"


@pytest.mark.asyncio
async def test_list_assignments_sorted_by_role(db, shift, worker, second_worker, crew_chief_assignment):
    await _assign(db, shift, worker, "GL")
    await _assign(db, shift, second_worker, "RG")
    rows = await svc.list_assignments(db, shift.id)
    assert [r.role_code for r in rows] == ["CC", "RG", "GL"]


# ── Gleichzeitige Einteilung (eigene Datei-DB, getrennte Verbindungen) ────────

@pytest_asyncio.fixture
async def file_engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crewsync.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.mark.asyncio
async def test_concurrent_overlapping_assignments_serialize(file_engine):
    factory = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
    company_id, job_id, user_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    shift_a, shift_b = uuid.uuid4(), uuid.uuid4()
    async with factory() as setup:
        setup.add(Company(id=company_id, name="Stagecraft Events", is_active=True))
        setup.add(Job(id=job_id, company_id=company_id, name="Spring Concert Load-In", location="Hall A"))
        setup.add(Shift(id=shift_a, job_id=job_id, start_time=at(10), end_time=at(14)))
        setup.add(Shift(id=shift_b, job_id=job_id, start_time=at(13), end_time=at(17)))
        setup.add(User(id=user_id, name="Sam Stagehand", email="worker@test.de",
                       hashed_password="-", role=UserRole.EMPLOYEE.value, is_active=True))
        await setup.commit()

    async def _assign_in_own_session(shift_id):
        async with factory() as session:
            result = await svc.assign_worker(session, shift_id, user_id, "SH")
            return result.created, len(result.conflicts)

    outcomes = await asyncio.gather(_assign_in_own_session(shift_a), _assign_in_own_session(shift_b))
    # Genau einer schreibt, der andere sieht dessen Einsatz als Konflikt
    assert sorted(outcomes) == [(False, 1), (True, 0)]

    async with factory() as check:
        count = await check.execute(
            select(func.count(AssignedPersonnel.id)).where(AssignedPersonnel.user_id == user_id)
        )
        assert count.scalar() == 1


# ── Stempeln ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_full_day_scenario(db, shift, worker):
    assignment = await _assign(db, shift, worker)

    entry = await svc.clock_in(db, assignment.id, at(8))
    assert entry.entry_number == 1
    assert entry.is_active
    assert await _status(db, AssignedPersonnel, assignment.id) == WorkerStatus.CLOCKED_IN.value
    assert await _status(db, Shift, shift.id) == ShiftStatus.IN_PROGRESS.value

    entry = await svc.clock_out(db, assignment.id, at(16))
    assert entry.entry_number == 1
    assert not entry.is_active
    assert entry.elapsed_hours == 8.0
    assert await _status(db, AssignedPersonnel, assignment.id) == WorkerStatus.CLOCKED_OUT.value

    outcome = await svc.end_shift(db, shift.id)
    assert outcome.ended == [assignment.id]
    assert outcome.force_closed_entries == 0
    assert await _status(db, AssignedPersonnel, assignment.id) == WorkerStatus.SHIFT_ENDED.value
    assert await _status(db, Shift, shift.id) == ShiftStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_breaks_keep_single_active_entry(db, shift, worker):
    assignment = await _assign(db, shift, worker)

    await svc.clock_in(db, assignment.id, at(8))
    assert await _active_count(db, assignment.id) == 1
    await svc.start_break(db, assignment.id, at(12))
    assert await _active_count(db, assignment.id) == 0
    assert await _status(db, AssignedPersonnel, assignment.id) == WorkerStatus.ON_BREAK.value
    second = await svc.end_break(db, assignment.id, at(12, 30))
    assert second.entry_number == 2
    assert await _active_count(db, assignment.id) == 1
    await svc.clock_out(db, assignment.id, at(16))
    assert await _active_count(db, assignment.id) == 0

    entries = await list_entries(db, assignment.id)
    assert [e.entry_number for e in entries] == [1, 2]
    assert sum(e.elapsed_hours for e in entries) == 7.5


@pytest.mark.asyncio
async def test_clock_in_twice_rejected(db, shift, worker):
    aid = (await _assign(db, shift, worker)).id
    await svc.clock_in(db, aid, at(8))
    with pytest.raises(InvalidStateError):
        await svc.clock_in(db, aid, at(9))
    # Fehlschlag rollt zurück – Objekte sind danach expired, daher nur noch IDs
    assert await _active_count(db, aid) == 1


@pytest.mark.asyncio
async def test_clock_out_without_open_entry(db, shift, worker):
    assignment = await _assign(db, shift, worker)
    # Status sagt eingestempelt, aber kein offener Eintrag vorhanden
    assignment.status = WorkerStatus.CLOCKED_IN.value
    await db.commit()

    aid = assignment.id
    with pytest.raises(NoActiveEntryError):
        await svc.clock_out(db, aid, at(16))
    assert await _status(db, AssignedPersonnel, aid) == WorkerStatus.CLOCKED_IN.value


@pytest.mark.asyncio
async def test_clock_out_never_clocked_in(db, shift, worker):
    aid = (await _assign(db, shift, worker)).id
    with pytest.raises(NoActiveEntryError) as exc_info:
        await svc.clock_out(db, aid, at(16))
    assert exc_info.value.kind == "no_active_entry"
    assert await _status(db, AssignedPersonnel, aid) == WorkerStatus.ASSIGNED.value


@pytest.mark.asyncio
async def test_clock_out_on_break_or_after_clock_out(db, shift, worker):
    aid = (await _assign(db, shift, worker)).id
    await svc.clock_in(db, aid, at(8))
    await svc.start_break(db, aid, at(12))
    with pytest.raises(NoActiveEntryError):
        await svc.clock_out(db, aid, at(13))
    assert await _status(db, AssignedPersonnel, aid) == WorkerStatus.ON_BREAK.value

    await svc.end_break(db, aid, at(12, 30))
    await svc.clock_out(db, aid, at(16))
    with pytest.raises(NoActiveEntryError):
        await svc.clock_out(db, aid, at(17))
    assert await _status(db, AssignedPersonnel, aid) == WorkerStatus.CLOCKED_OUT.value


@pytest.mark.asyncio
async def test_time_entry_cap(db, shift, worker):
    aid = (await _assign(db, shift, worker)).id
    for hour in (8, 10, 12):
        await svc.clock_in(db, aid, at(hour))
        await svc.clock_out(db, aid, at(hour + 1))

    with pytest.raises(InvalidStateError):
        await svc.clock_in(db, aid, at(14))
    # Rollback: Status unverändert, kein vierter Eintrag
    assert await _status(db, AssignedPersonnel, aid) == WorkerStatus.CLOCKED_OUT.value
    assert len(await list_entries(db, aid)) == 3


@pytest.mark.asyncio
async def test_end_shift_force_closes_at_shift_end(db, shift, worker, second_worker):
    working = await _assign(db, shift, worker)
    absent = await _assign(db, shift, second_worker, "RG")
    await svc.clock_in(db, working.id, at(8))
    await svc.mark_no_show(db, absent.id)

    outcome = await svc.end_shift(db, shift.id)
    assert outcome.ended == [working.id]
    assert outcome.skipped == [absent.id]
    assert outcome.force_closed_entries == 1

    entries = await list_entries(db, working.id)
    assert as_utc(entries[0].clock_out) == at(16)
    assert entries[0].is_active is False
    assert await _status(db, AssignedPersonnel, absent.id) == WorkerStatus.NO_SHOW.value


@pytest.mark.asyncio
async def test_end_worker_shift_closes_at_given_time(db, shift, worker):
    assignment = await _assign(db, shift, worker)
    await svc.clock_in(db, assignment.id, at(8))
    await svc.start_break(db, assignment.id, at(11))

    await svc.end_worker_shift(db, assignment.id, at(13))
    assert await _status(db, AssignedPersonnel, assignment.id) == WorkerStatus.SHIFT_ENDED.value
    assert await _active_count(db, assignment.id) == 0
    # Pause war schon geschlossen, nichts zu erzwingen
    entries = await list_entries(db, assignment.id)
    assert as_utc(entries[0].clock_out) == at(11)


@pytest.mark.asyncio
async def test_no_show_after_clock_in_rejected(db, shift, worker):
    assignment = await _assign(db, shift, worker)
    await svc.clock_in(db, assignment.id, at(8))
    await svc.clock_out(db, assignment.id, at(9))
    with pytest.raises(InvalidStateError):
        await svc.mark_no_show(db, assignment.id)


# ── unassign_worker ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_unassign_deletes_assignment_and_entries(db, shift, worker):
    assignment = await _assign(db, shift, worker)
    await svc.clock_in(db, assignment.id, at(8))
    await svc.clock_out(db, assignment.id, at(12))

    aid = assignment.id
    await svc.unassign_worker(db, aid)

    remaining = await db.execute(select(func.count(TimeEntry.id)))
    assert remaining.scalar() == 0
    gone = await db.execute(select(AssignedPersonnel.id).where(AssignedPersonnel.id == aid))
    assert gone.scalar_one_or_none() is None


@pytest.mark.asyncio
async def test_unassign_missing(db):
    with pytest.raises(NotFoundError):
        await svc.unassign_worker(db, uuid.uuid4())


@pytest.mark.asyncio
async def test_unassign_blocked_once_timesheet_left_draft(db, shift, worker, admin_user):
    assignment = await _assign(db, shift, worker)
    await svc.clock_in(db, assignment.id, at(8))
    await svc.clock_out(db, assignment.id, at(16))
    await timesheet_service.submit(db, shift.id, admin_user)

    aid = assignment.id
    with pytest.raises(InvalidStateError):
        await svc.unassign_worker(db, aid)
    still_there = await db.execute(select(AssignedPersonnel.id).where(AssignedPersonnel.id == aid))
    assert still_there.scalar_one() == aid


@pytest.mark.asyncio
async def test_unassign_allowed_with_draft_timesheet(db, shift, worker):
    assignment = await _assign(db, shift, worker)
    await svc.clock_in(db, assignment.id, at(8))
    await svc.clock_out(db, assignment.id, at(16))
    await timesheet_service.get_or_create_timesheet(db, shift.id)

    aid = assignment.id
    await svc.unassign_worker(db, aid)
    gone = await db.execute(select(AssignedPersonnel.id).where(AssignedPersonnel.id == aid))
    assert gone.scalar_one_or_none() is None
