import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, DateTime, Boolean, ForeignKey, Integer, Text, UniqueConstraint, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewsync.core.database import Base
from crewsync.utils.time_utils import hours_between


class WorkerStatus(str, Enum):
    ASSIGNED = "Assigned"
    CLOCKED_IN = "ClockedIn"
    ON_BREAK = "OnBreak"
    CLOCKED_OUT = "ClockedOut"
    SHIFT_ENDED = "ShiftEnded"
    NO_SHOW = "NoShow"


class AssignedPersonnel(Base):
    __tablename__ = "assigned_personnel"
    __table_args__ = (
        UniqueConstraint("shift_id", "user_id", "role_code", name="uq_assigned_personnel_shift_user_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    shift_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    role_code: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), default=WorkerStatus.ASSIGNED.value
    )  # Assigned | ClockedIn | OnBreak | ClockedOut | ShiftEnded | NoShow

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    shift: Mapped["Shift"] = relationship(back_populates="assigned_personnel")
    user: Mapped["User"] = relationship()
    time_entries: Mapped[list["TimeEntry"]] = relationship(
        back_populates="assigned_personnel",
        order_by="TimeEntry.entry_number",
    )


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        UniqueConstraint("assigned_personnel_id", "entry_number", name="uq_time_entries_assignment_number"),
        # Höchstens ein offener Eintrag pro Einsatz – auch auf DB-Ebene
        Index(
            "uq_time_entries_one_active",
            "assigned_personnel_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    assigned_personnel_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("assigned_personnel.id", ondelete="CASCADE"), nullable=False
    )

    entry_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    assigned_personnel: Mapped["AssignedPersonnel"] = relationship(back_populates="time_entries")

    @property
    def elapsed_hours(self) -> float:
        return hours_between(self.clock_in, self.clock_out)
