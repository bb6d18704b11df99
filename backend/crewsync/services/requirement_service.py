"""
Soll-Besetzung (WorkerRequirement) pro Schicht.

Quellen: manuelle Eingabe oder ein Stapel importierter Worker-Datensätze.
Der Crew Chief ist immer genau 1 – unabhängig von den Daten. Die Menge wird
immer komplett ersetzt (delete + insert), nie inkrementell angepasst, damit
keine veralteten Rollen-Zeilen übrig bleiben.
"""
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from sqlalchemy import delete, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from crewsync.core.exceptions import InvalidRoleError, NotFoundError, ValidationError
from crewsync.models.assignment import AssignedPersonnel, WorkerStatus
from crewsync.models.shift import Shift, WorkerRequirement
from crewsync.utils.roles import ROLE_CATALOG, ROLE_ORDER, RoleCode, is_valid_role


def _empty_counts() -> dict[RoleCode, int]:
    counts = {code: 0 for code in ROLE_ORDER}
    for code, info in ROLE_CATALOG.items():
        if info.fixed_count is not None:
            counts[code] = info.fixed_count
    return counts


def compute_requirements(records: Iterable) -> dict[RoleCode, int]:
    """
    Soll-Anzahl je Rolle aus einem Stapel Worker-Datensätze.

    Jede Katalog-Rolle ist im Ergebnis enthalten (0, wenn sie im Stapel fehlt);
    Rollen mit fester Anzahl ignorieren die Daten komplett.
    """
    tally: Counter = Counter()
    for record in records:
        code = record.role_code
        if not is_valid_role(getattr(code, "value", code)):
            raise InvalidRoleError(code)
        tally[RoleCode(getattr(code, "value", code))] += 1

    counts = _empty_counts()
    for code, n in tally.items():
        if ROLE_CATALOG[code].fixed_count is None:
            counts[code] = n
    return counts


def requirements_from_manual(manual: Mapping[str, int]) -> dict[RoleCode, int]:
    errors = []
    for code, count in manual.items():
        if not is_valid_role(getattr(code, "value", code)):
            errors.append({"field": str(code), "message": "unknown role code"})
        elif isinstance(count, bool) or not isinstance(count, int) or count < 0:
            errors.append({"field": str(code), "message": "required count must be a non-negative integer"})
    if errors:
        raise ValidationError("Invalid worker requirements", errors=errors)

    counts = _empty_counts()
    for code, count in manual.items():
        role = RoleCode(getattr(code, "value", code))
        if ROLE_CATALOG[role].fixed_count is None:
            counts[role] = count
    return counts


async def replace_requirements(
    db: AsyncSession, shift_id: uuid.UUID, counts: Mapping[RoleCode, int]
) -> list[WorkerRequirement]:
    """Ersetzt die komplette Soll-Menge der Schicht (läuft in der Transaktion des Aufrufers)."""
    await db.execute(delete(WorkerRequirement).where(WorkerRequirement.shift_id == shift_id))
    rows = []
    for code in ROLE_ORDER:
        info = ROLE_CATALOG[code]
        row = WorkerRequirement(
            shift_id=shift_id,
            role_code=code.value,
            role_name=info.name,
            color=info.color,
            required_count=counts.get(code, 0),
        )
        db.add(row)
        rows.append(row)
    await db.flush()
    return rows


async def set_requirements(db: AsyncSession, shift_id: uuid.UUID, manual: Mapping[str, int]) -> list[WorkerRequirement]:
    counts = requirements_from_manual(manual)
    if await db.get(Shift, shift_id) is None:
        raise NotFoundError("Shift", shift_id)
    return await replace_requirements(db, shift_id, counts)


@dataclass
class RoleFill:
    role_code: str
    role_name: str
    color: str
    required: int
    assigned: int


@dataclass
class FillRate:
    shift_id: uuid.UUID
    roles: list[RoleFill] = field(default_factory=list)

    @property
    def total_required(self) -> int:
        return sum(r.required for r in self.roles)

    @property
    def total_assigned(self) -> int:
        return sum(r.assigned for r in self.roles)

    @property
    def ratio(self) -> float | None:
        if self.total_required == 0:
            return None
        return self.total_assigned / self.total_required


async def get_fill_rate(db: AsyncSession, shift_id: uuid.UUID) -> FillRate:
    """Soll/Ist pro Rolle; No-Shows zählen nicht als besetzt."""
    if await db.get(Shift, shift_id) is None:
        raise NotFoundError("Shift", shift_id)

    req_result = await db.execute(
        select(WorkerRequirement.role_code, WorkerRequirement.required_count)
        .where(WorkerRequirement.shift_id == shift_id)
    )
    required = {code: count for code, count in req_result.all()}

    assigned_result = await db.execute(
        select(AssignedPersonnel.role_code, func.count(AssignedPersonnel.id))
        .where(
            AssignedPersonnel.shift_id == shift_id,
            AssignedPersonnel.status != WorkerStatus.NO_SHOW.value,
        )
        .group_by(AssignedPersonnel.role_code)
    )
    assigned = {code: count for code, count in assigned_result.all()}

    fill = FillRate(shift_id=shift_id)
    for code in ROLE_ORDER:
        info = ROLE_CATALOG[code]
        fill.roles.append(RoleFill(
            role_code=code.value,
            role_name=info.name,
            color=info.color,
            required=required.get(code.value, 0),
            assigned=assigned.get(code.value, 0),
        ))
    return fill
