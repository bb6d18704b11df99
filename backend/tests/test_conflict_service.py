"""
Tests für services/conflict_service.py – Überschneidungen halboffener Zeitfenster.
"""
import uuid

import pytest

from crewsync.core.exceptions import ValidationError
from crewsync.models.assignment import AssignedPersonnel, WorkerStatus
from crewsync.models.company import Job
from crewsync.services.conflict_service import TimeWindow, check_shift_conflicts, find_conflicts
from tests.conftest import at


async def _place(db, shift, user, role="SH", status=WorkerStatus.ASSIGNED):
    db.add(AssignedPersonnel(shift_id=shift.id, user_id=user.id, role_code=role, status=status.value))
    await db.commit()


def test_window_must_end_after_start():
    with pytest.raises(ValidationError):
        TimeWindow(at(10), at(10))
    with pytest.raises(ValidationError):
        TimeWindow(at(12), at(10))


@pytest.mark.asyncio
async def test_overlap_reported(db, make_shift, worker):
    shift_a = await make_shift(at(10), at(14))
    await _place(db, shift_a, worker)

    conflicts = await find_conflicts(db, worker.id, TimeWindow(at(13), at(17)))
    assert len(conflicts) == 1
    assert conflicts[0].shift_id == shift_a.id


@pytest.mark.asyncio
async def test_touching_endpoints_do_not_conflict(db, make_shift, worker):
    shift_a = await make_shift(at(10), at(14))
    await _place(db, shift_a, worker)

    assert await find_conflicts(db, worker.id, TimeWindow(at(14), at(18))) == []
    assert await find_conflicts(db, worker.id, TimeWindow(at(6), at(10))) == []


@pytest.mark.asyncio
async def test_contained_window_conflicts(db, make_shift, worker):
    shift_a = await make_shift(at(8), at(20))
    await _place(db, shift_a, worker)
    assert len(await find_conflicts(db, worker.id, TimeWindow(at(12), at(13)))) == 1


@pytest.mark.asyncio
async def test_other_workers_are_ignored(db, make_shift, worker, second_worker):
    shift_a = await make_shift(at(10), at(14))
    await _place(db, shift_a, second_worker)
    assert await find_conflicts(db, worker.id, TimeWindow(at(11), at(12))) == []


@pytest.mark.asyncio
async def test_overlap_reported_regardless_of_status(db, make_shift, worker):
    # Auch beendete Einsätze blockieren physisch dasselbe Zeitfenster
    shift_a = await make_shift(at(10), at(14))
    await _place(db, shift_a, worker, status=WorkerStatus.SHIFT_ENDED)
    conflicts = await find_conflicts(db, worker.id, TimeWindow(at(12), at(16)))
    assert [c.status for c in conflicts] == ["ShiftEnded"]


@pytest.mark.asyncio
async def test_conflict_carries_review_details(db, make_shift, worker, company):
    shift_a = await make_shift(at(10), at(14))
    other_job = Job(id=uuid.uuid4(), company_id=company.id, name="Trade Fair Build", location="Hall 7")
    db.add(other_job)
    await db.commit()
    shift_b = await make_shift(at(9), at(11), job_id=other_job.id)
    await _place(db, shift_b, worker, role="RG")

    report = await check_shift_conflicts(db, worker.id, shift_a)
    assert report.has_conflicts
    c = report.conflicts[0]
    assert c.job_name == "Trade Fair Build"
    assert c.company_name == "Stagecraft Events"
    assert c.role_code == "RG"
    assert c.role_name == "Rigger"
    # Ohne eigenen Schicht-Ort gilt der Ort des Jobs
    assert c.location == "Hall 7"
    assert c.start_time == at(9)
    assert c.end_time == at(11)
    assert c.to_dict()["job_name"] == "Trade Fair Build"


@pytest.mark.asyncio
async def test_candidate_shift_itself_is_excluded(db, make_shift, worker):
    shift_a = await make_shift(at(10), at(14))
    await _place(db, shift_a, worker, role="SH")
    # Zweite Rolle auf derselben Schicht ist keine Doppelbuchung
    report = await check_shift_conflicts(db, worker.id, shift_a)
    assert not report.has_conflicts


@pytest.mark.asyncio
async def test_conflicts_ordered_by_start(db, make_shift, worker):
    late = await make_shift(at(15), at(19))
    early = await make_shift(at(9), at(12))
    await _place(db, late, worker)
    await _place(db, early, worker)
    conflicts = await find_conflicts(db, worker.id, TimeWindow(at(8), at(20)))
    assert [c.shift_id for c in conflicts] == [early.id, late.id]
