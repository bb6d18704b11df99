import uuid

from fastapi import APIRouter, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from crewsync.api.deps import DB, AdminUser, CurrentUser
from crewsync.core.database import run_in_transaction
from crewsync.core.exceptions import NotFoundError, UnauthorizedError
from crewsync.models.shift import Shift
from crewsync.models.user import User
from crewsync.schemas.assignment import (
    AssignmentCreate, AssignmentOut, AssignmentResultOut, ClockAction, ConflictCheckOut,
    ConflictCheckRequest, ConflictOut, EndShiftOut, TimeEntryOut,
)
from crewsync.schemas.import_sync import SyncImportRequest, SyncSummaryOut
from crewsync.schemas.shift import FillRateOut, RequirementsUpdate
from crewsync.services import assignment_service, permissions, requirement_service
from crewsync.services.conflict_service import check_shift_conflicts
from crewsync.services.import_sync_service import ImportRecord, sync_shift_from_import

router = APIRouter(prefix="/shifts", tags=["shifts"])


# ── Helper ───────────────────────────────────────────────────────────────────

async def _get_shift(db, shift_id: uuid.UUID) -> Shift:
    shift = await db.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError("Shift", shift_id)
    return shift


async def _require_manager(db, user: User, shift_id: uuid.UUID) -> None:
    """Admin oder Crew Chief genau dieser Schicht."""
    await _get_shift(db, shift_id)
    if not await permissions.can_manage_shift(db, user, shift_id):
        raise UnauthorizedError("Admin or the shift's crew chief required", shift_id=str(shift_id))


async def _require_viewer(db, user: User, shift_id: uuid.UUID) -> None:
    await _get_shift(db, shift_id)
    if not await permissions.can_approve_as_company(db, user, shift_id):
        raise UnauthorizedError("Not allowed to view this shift", shift_id=str(shift_id))


# ── Soll-Besetzung ───────────────────────────────────────────────────────────

@router.get("/{shift_id}/requirements", response_model=FillRateOut)
async def get_requirements(shift_id: uuid.UUID, current_user: CurrentUser, db: DB):
    await _require_viewer(db, current_user, shift_id)
    return FillRateOut.model_validate(await requirement_service.get_fill_rate(db, shift_id))


@router.put("/{shift_id}/requirements", response_model=FillRateOut)
async def update_requirements(shift_id: uuid.UUID, payload: RequirementsUpdate, current_user: AdminUser, db: DB):
    await run_in_transaction(db, lambda: requirement_service.set_requirements(db, shift_id, payload.counts))
    return FillRateOut.model_validate(await requirement_service.get_fill_rate(db, shift_id))


# ── Einsätze ─────────────────────────────────────────────────────────────────

@router.get("/{shift_id}/assignments", response_model=list[AssignmentOut])
async def list_assignments(shift_id: uuid.UUID, current_user: CurrentUser, db: DB):
    await _require_viewer(db, current_user, shift_id)
    return await assignment_service.list_assignments(db, shift_id)


@router.post("/{shift_id}/check-conflicts", response_model=ConflictCheckOut)
async def check_conflicts(shift_id: uuid.UUID, payload: ConflictCheckRequest, current_user: CurrentUser, db: DB):
    await _require_manager(db, current_user, shift_id)
    shift = await _get_shift(db, shift_id)
    report = await check_shift_conflicts(db, payload.user_id, shift)
    return ConflictCheckOut(
        user_id=report.user_id,
        has_conflicts=report.has_conflicts,
        conflicts=[ConflictOut.model_validate(c) for c in report.conflicts],
    )


@router.post("/{shift_id}/assignments", response_model=AssignmentResultOut, status_code=status.HTTP_201_CREATED)
async def assign_worker(shift_id: uuid.UUID, payload: AssignmentCreate, current_user: CurrentUser, db: DB):
    await _require_manager(db, current_user, shift_id)
    result = await assignment_service.assign_worker(
        db, shift_id, payload.user_id, payload.role_code,
        override=payload.override, actor=current_user,
    )
    out = AssignmentResultOut(
        assignment=AssignmentOut.model_validate(result.assignment) if result.created else None,
        conflicts=[ConflictOut.model_validate(c) for c in result.conflicts],
        overridden=result.overridden,
    )
    if not result.created:
        # Nichts geschrieben – Konflikte zur Entscheidung zurückgeben
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "kind": "conflict_detected",
                "message": "Worker has overlapping assignments; resend with override=true to assign anyway",
                "details": jsonable_encoder(out),
            },
        )
    return out


@router.delete("/{shift_id}/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_worker(shift_id: uuid.UUID, assignment_id: uuid.UUID, current_user: CurrentUser, db: DB):
    await _require_manager(db, current_user, shift_id)
    await assignment_service.get_assignment(db, assignment_id, shift_id)
    await assignment_service.unassign_worker(db, assignment_id, actor=current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Stempeln ─────────────────────────────────────────────────────────────────

async def _clock(db, user: User, shift_id: uuid.UUID, assignment_id: uuid.UUID, operation, payload: ClockAction | None):
    await _require_manager(db, user, shift_id)
    await assignment_service.get_assignment(db, assignment_id, shift_id)
    return await operation(db, assignment_id, payload.at if payload else None)


@router.post("/{shift_id}/assignments/{assignment_id}/clock-in", response_model=TimeEntryOut)
async def clock_in(shift_id: uuid.UUID, assignment_id: uuid.UUID, current_user: CurrentUser, db: DB,
                   payload: ClockAction | None = None):
    return await _clock(db, current_user, shift_id, assignment_id, assignment_service.clock_in, payload)


@router.post("/{shift_id}/assignments/{assignment_id}/clock-out", response_model=TimeEntryOut)
async def clock_out(shift_id: uuid.UUID, assignment_id: uuid.UUID, current_user: CurrentUser, db: DB,
                    payload: ClockAction | None = None):
    return await _clock(db, current_user, shift_id, assignment_id, assignment_service.clock_out, payload)


@router.post("/{shift_id}/assignments/{assignment_id}/start-break", response_model=TimeEntryOut)
async def start_break(shift_id: uuid.UUID, assignment_id: uuid.UUID, current_user: CurrentUser, db: DB,
                      payload: ClockAction | None = None):
    return await _clock(db, current_user, shift_id, assignment_id, assignment_service.start_break, payload)


@router.post("/{shift_id}/assignments/{assignment_id}/end-break", response_model=TimeEntryOut)
async def end_break(shift_id: uuid.UUID, assignment_id: uuid.UUID, current_user: CurrentUser, db: DB,
                    payload: ClockAction | None = None):
    return await _clock(db, current_user, shift_id, assignment_id, assignment_service.end_break, payload)


@router.post("/{shift_id}/assignments/{assignment_id}/end", response_model=AssignmentOut)
async def end_worker_shift(shift_id: uuid.UUID, assignment_id: uuid.UUID, current_user: CurrentUser, db: DB,
                           payload: ClockAction | None = None):
    return await _clock(db, current_user, shift_id, assignment_id, assignment_service.end_worker_shift, payload)


@router.post("/{shift_id}/assignments/{assignment_id}/no-show", response_model=AssignmentOut)
async def mark_no_show(shift_id: uuid.UUID, assignment_id: uuid.UUID, current_user: CurrentUser, db: DB):
    await _require_manager(db, current_user, shift_id)
    await assignment_service.get_assignment(db, assignment_id, shift_id)
    return await assignment_service.mark_no_show(db, assignment_id)


@router.post("/{shift_id}/end", response_model=EndShiftOut)
async def end_shift(shift_id: uuid.UUID, current_user: CurrentUser, db: DB):
    await _require_manager(db, current_user, shift_id)
    return await assignment_service.end_shift(db, shift_id)


# ── Import ───────────────────────────────────────────────────────────────────

@router.post("/{shift_id}/sync-import", response_model=SyncSummaryOut)
async def sync_import(shift_id: uuid.UUID, payload: SyncImportRequest, current_user: CurrentUser, db: DB):
    await _require_manager(db, current_user, shift_id)
    records = [ImportRecord(**worker.model_dump()) for worker in payload.workers]
    return await sync_shift_from_import(
        db, shift_id, records,
        overwrite_existing=payload.overwrite_existing, actor=current_user,
    )
