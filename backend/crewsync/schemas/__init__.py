from crewsync.schemas.auth import Token, LoginRequest, RefreshRequest, UserOut
from crewsync.schemas.shift import RequirementsUpdate, RoleFillOut, FillRateOut
from crewsync.schemas.assignment import (
    AssignmentCreate, AssignmentOut, AssignmentResultOut, ClockAction, ConflictCheckRequest,
    ConflictCheckOut, ConflictOut, EndShiftOut, TimeEntryOut,
)
from crewsync.schemas.timesheet import ApprovalRequest, RejectRequest, TimesheetOut, TimesheetEntryOut
from crewsync.schemas.import_sync import ImportWorker, SyncImportRequest, SyncSummaryOut

__all__ = [
    "Token", "LoginRequest", "RefreshRequest", "UserOut",
    "RequirementsUpdate", "RoleFillOut", "FillRateOut",
    "AssignmentCreate", "AssignmentOut", "AssignmentResultOut", "ClockAction", "ConflictCheckRequest",
    "ConflictCheckOut", "ConflictOut", "EndShiftOut", "TimeEntryOut",
    "ApprovalRequest", "RejectRequest", "TimesheetOut", "TimesheetEntryOut",
    "ImportWorker", "SyncImportRequest", "SyncSummaryOut",
]
