from pydantic import BaseModel
import uuid
from datetime import datetime
from typing import Optional


class AssignmentCreate(BaseModel):
    user_id: uuid.UUID
    role_code: str
    override: bool = False


class ConflictCheckRequest(BaseModel):
    user_id: uuid.UUID


class ClockAction(BaseModel):
    at: Optional[datetime] = None


class TimeEntryOut(BaseModel):
    id: uuid.UUID
    assigned_personnel_id: uuid.UUID
    entry_number: int
    clock_in: datetime
    clock_out: Optional[datetime]
    is_active: bool
    elapsed_hours: float

    model_config = {"from_attributes": True}


class AssignmentOut(BaseModel):
    id: uuid.UUID
    shift_id: uuid.UUID
    user_id: uuid.UUID
    role_code: str
    status: str
    assigned_at: datetime

    model_config = {"from_attributes": True}


class ConflictOut(BaseModel):
    assignment_id: uuid.UUID
    shift_id: uuid.UUID
    job_name: str
    company_name: str
    role_code: str
    role_name: str
    status: str
    location: Optional[str]
    start_time: datetime
    end_time: datetime

    model_config = {"from_attributes": True}


class ConflictCheckOut(BaseModel):
    user_id: uuid.UUID
    has_conflicts: bool
    conflicts: list[ConflictOut]


class AssignmentResultOut(BaseModel):
    assignment: Optional[AssignmentOut]
    conflicts: list[ConflictOut] = []
    overridden: bool = False


class EndShiftOut(BaseModel):
    shift_id: uuid.UUID
    ended: list[uuid.UUID]
    skipped: list[uuid.UUID]
    force_closed_entries: int

    model_config = {"from_attributes": True}
