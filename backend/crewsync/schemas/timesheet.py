from pydantic import BaseModel
import uuid
from datetime import datetime
from typing import Optional


class ApprovalRequest(BaseModel):
    signature: Optional[str] = None
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class TimesheetEntryOut(BaseModel):
    user_id: uuid.UUID
    user_name: str
    role_code: str
    entry_number: int
    clock_in: datetime
    clock_out: Optional[datetime]
    hours: float

    model_config = {"from_attributes": True}


class TimesheetOut(BaseModel):
    id: uuid.UUID
    shift_id: uuid.UUID
    status: str
    revision: int
    submitted_at: Optional[datetime]
    submitted_by: Optional[uuid.UUID]
    company_approved_at: Optional[datetime]
    company_approved_by: Optional[uuid.UUID]
    company_signature: Optional[str]
    company_notes: Optional[str]
    manager_approved_at: Optional[datetime]
    manager_approved_by: Optional[uuid.UUID]
    manager_signature: Optional[str]
    manager_notes: Optional[str]
    rejected_at: Optional[datetime]
    rejected_by: Optional[uuid.UUID]
    rejection_reason: Optional[str]
    entries: list[TimesheetEntryOut] = []

    model_config = {"from_attributes": True}
