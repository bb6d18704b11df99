import uuid

from fastapi import APIRouter

from crewsync.api.deps import DB, CurrentUser
from crewsync.core.exceptions import UnauthorizedError
from crewsync.models.timesheet import Timesheet
from crewsync.schemas.timesheet import ApprovalRequest, RejectRequest, TimesheetEntryOut, TimesheetOut
from crewsync.services import permissions, timesheet_service

# Einstieg über die Schicht (anlegen / einreichen) …
shift_timesheet_router = APIRouter(prefix="/shifts", tags=["timesheets"])
# … und über die Timesheet-ID (Freigaben)
router = APIRouter(prefix="/timesheets", tags=["timesheets"])


async def _timesheet_out(db, timesheet: Timesheet) -> TimesheetOut:
    # entries nicht über die Relationship laden (kein Lazy-Load im Async-Kontext)
    entries = await timesheet_service.list_snapshot(db, timesheet.id)
    data = {column.key: getattr(timesheet, column.key) for column in Timesheet.__table__.columns}
    return TimesheetOut(**data, entries=[TimesheetEntryOut.model_validate(e) for e in entries])


@shift_timesheet_router.get("/{shift_id}/timesheet", response_model=TimesheetOut)
async def get_shift_timesheet(shift_id: uuid.UUID, current_user: CurrentUser, db: DB):
    if not await permissions.can_approve_as_company(db, current_user, shift_id):
        raise UnauthorizedError("Not allowed to view this timesheet")
    timesheet = await timesheet_service.get_or_create_timesheet(db, shift_id)
    return await _timesheet_out(db, timesheet)


@shift_timesheet_router.post("/{shift_id}/timesheet/submit", response_model=TimesheetOut)
async def submit_timesheet(shift_id: uuid.UUID, current_user: CurrentUser, db: DB):
    timesheet = await timesheet_service.submit(db, shift_id, current_user)
    return await _timesheet_out(db, timesheet)


@router.get("/{timesheet_id}", response_model=TimesheetOut)
async def get_timesheet(timesheet_id: uuid.UUID, current_user: CurrentUser, db: DB):
    timesheet = await timesheet_service.get_timesheet(db, timesheet_id)
    if not await permissions.can_approve_as_company(db, current_user, timesheet.shift_id):
        raise UnauthorizedError("Not allowed to view this timesheet")
    return await _timesheet_out(db, timesheet)


@router.post("/{timesheet_id}/approve-company", response_model=TimesheetOut)
async def approve_company(timesheet_id: uuid.UUID, payload: ApprovalRequest, current_user: CurrentUser, db: DB):
    timesheet = await timesheet_service.approve_as_company(
        db, timesheet_id, current_user, payload.signature, payload.notes
    )
    return await _timesheet_out(db, timesheet)


@router.post("/{timesheet_id}/approve-manager", response_model=TimesheetOut)
async def approve_manager(timesheet_id: uuid.UUID, payload: ApprovalRequest, current_user: CurrentUser, db: DB):
    timesheet = await timesheet_service.approve_as_manager(
        db, timesheet_id, current_user, payload.signature, payload.notes
    )
    return await _timesheet_out(db, timesheet)


@router.post("/{timesheet_id}/reject", response_model=TimesheetOut)
async def reject_timesheet(timesheet_id: uuid.UUID, payload: RejectRequest, current_user: CurrentUser, db: DB):
    timesheet = await timesheet_service.reject(db, timesheet_id, current_user, payload.reason)
    return await _timesheet_out(db, timesheet)


@router.post("/{timesheet_id}/resubmit", response_model=TimesheetOut)
async def resubmit_timesheet(timesheet_id: uuid.UUID, current_user: CurrentUser, db: DB):
    timesheet = await timesheet_service.resubmit(db, timesheet_id, current_user)
    return await _timesheet_out(db, timesheet)
