from pydantic import BaseModel
import uuid
from typing import Optional


class ImportWorker(BaseModel):
    # Rohwerte; Prüfung aller Datensätze im import_sync_service
    user_id: str
    role_code: str
    clock_in_time: Optional[str] = None
    clock_out_time: Optional[str] = None
    entry_number: Optional[int] = None


class SyncImportRequest(BaseModel):
    workers: list[ImportWorker]
    overwrite_existing: bool = True


class SyncSummaryOut(BaseModel):
    shift_id: uuid.UUID
    requirements: dict[str, int]
    requirements_written: int
    personnel_written: int
    time_entries_created: int
    missing_crew_chief: bool

    model_config = {"from_attributes": True}
