from crewsync.models.company import Company, Job
from crewsync.models.user import User, UserRole
from crewsync.models.shift import Shift, ShiftStatus, WorkerRequirement
from crewsync.models.assignment import AssignedPersonnel, TimeEntry, WorkerStatus
from crewsync.models.timesheet import Timesheet, TimesheetEntry, TimesheetStatus
from crewsync.models.audit import AuditLog

__all__ = [
    "Company",
    "Job",
    "User",
    "UserRole",
    "Shift",
    "ShiftStatus",
    "WorkerRequirement",
    "AssignedPersonnel",
    "TimeEntry",
    "WorkerStatus",
    "Timesheet",
    "TimesheetEntry",
    "TimesheetStatus",
    "AuditLog",
]
