import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewsync.core.database import Base
from crewsync.utils.time_utils import hours_between


class ShiftStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(50), default=ShiftStatus.PENDING.value
    )  # Pending | Active | InProgress | Completed | Cancelled

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    job: Mapped["Job"] = relationship(back_populates="shifts")
    worker_requirements: Mapped[list["WorkerRequirement"]] = relationship(back_populates="shift")
    assigned_personnel: Mapped[list["AssignedPersonnel"]] = relationship(back_populates="shift")
    timesheet: Mapped["Timesheet | None"] = relationship(back_populates="shift")

    @property
    def duration_hours(self) -> float:
        return hours_between(self.start_time, self.end_time)


class WorkerRequirement(Base):
    """
    Soll-Besetzung pro Rolle. Wird nie einzeln geändert, sondern immer als
    komplette Menge ersetzt (siehe requirement_service.replace_requirements).
    """
    __tablename__ = "worker_requirements"
    __table_args__ = (UniqueConstraint("shift_id", "role_code", name="uq_worker_requirements_shift_role"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    shift_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False)

    role_code: Mapped[str] = mapped_column(String(10), nullable=False)
    role_name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), default="gray")
    required_count: Mapped[int] = mapped_column(Integer, default=0)

    shift: Mapped["Shift"] = relationship(back_populates="worker_requirements")
