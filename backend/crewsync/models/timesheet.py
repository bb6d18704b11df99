import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, DateTime, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewsync.core.database import Base


class TimesheetStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_COMPANY_APPROVAL = "PENDING_COMPANY_APPROVAL"
    PENDING_MANAGER_APPROVAL = "PENDING_MANAGER_APPROVAL"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class Timesheet(Base):
    __tablename__ = "timesheets"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    shift_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    status: Mapped[str] = mapped_column(String(50), default=TimesheetStatus.DRAFT.value)
    revision: Mapped[int] = mapped_column(Integer, default=1)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    # Freigabe durch Kunde / Firma (oder Crew Chief vor Ort)
    company_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    company_approved_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    company_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    company_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Endfreigabe durch Admin
    manager_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    manager_approved_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    manager_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    shift: Mapped["Shift"] = relationship(back_populates="timesheet")
    entries: Mapped[list["TimesheetEntry"]] = relationship(
        back_populates="timesheet", order_by="TimesheetEntry.entry_number"
    )


class TimesheetEntry(Base):
    """Snapshot der Zeiteinträge zum Zeitpunkt der Einreichung."""
    __tablename__ = "timesheet_entries"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    timesheet_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("timesheets.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)

    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role_code: Mapped[str] = mapped_column(String(10), nullable=False)
    entry_number: Mapped[int] = mapped_column(Integer, nullable=False)
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    hours: Mapped[float] = mapped_column(Numeric(6, 2, asdecimal=False), default=0)

    timesheet: Mapped["Timesheet"] = relationship(back_populates="entries")
