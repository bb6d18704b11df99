from pydantic import BaseModel
import uuid
from typing import Optional


class RequirementsUpdate(BaseModel):
    # Rollen-Code → Soll-Anzahl; fehlende Rollen werden 0, CC ist immer 1
    counts: dict[str, int]


class RoleFillOut(BaseModel):
    role_code: str
    role_name: str
    color: str
    required: int
    assigned: int

    model_config = {"from_attributes": True}


class FillRateOut(BaseModel):
    shift_id: uuid.UUID
    roles: list[RoleFillOut]
    total_required: int
    total_assigned: int
    ratio: Optional[float]

    model_config = {"from_attributes": True}
