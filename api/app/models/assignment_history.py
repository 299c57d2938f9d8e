"""Assignment history ledger model."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Integer, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UTCDateTime, utcnow


class AssignmentReason(str, enum.Enum):
    """Why a case changed hands."""
    INITIAL = "INITIAL"
    MANUAL = "MANUAL"
    WORKLOAD_BALANCE = "WORKLOAD_BALANCE"
    ESCALATION = "ESCALATION"
    SHIFT_CHANGE = "SHIFT_CHANGE"
    UNAVAILABLE = "UNAVAILABLE"
    AUTO_ASSIGN = "AUTO_ASSIGN"
    TEAM_ROTATION = "TEAM_ROTATION"


class AssignmentHistory(TimestampMixin, Base):
    """Immutable record of one assignment event.

    The ``*_open_cases`` columns snapshot the open-case load of each party at
    the moment of the decision. They are NULL when the snapshot could not be
    taken.

    Attributes:
        case_id: Case that was assigned
        from_user_id: Previous primary user, if replaced
        to_user_id: Newly assigned user
        from_team_id: Previous primary team, if replaced
        to_team_id: Newly assigned team
        reason: Assignment reason
        assigned_by: Acting user; NULL for the system
        assigned_at: When the assignment happened
        notes: Free-text notes
    """

    __tablename__ = "assignment_history"

    case_id: Mapped[int] = mapped_column(
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    from_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    to_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    from_team_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
    )

    to_team_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
    )

    reason: Mapped[AssignmentReason] = mapped_column(
        Enum(AssignmentReason, name="assignment_reason_enum"),
        nullable=False,
    )

    assigned_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    assigned_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    from_user_open_cases: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    to_user_open_cases: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    from_team_open_cases: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    to_team_open_cases: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    @property
    def is_initial_assignment(self) -> bool:
        """An assignment that replaced nobody is the initial one."""
        return self.from_user_id is None and self.from_team_id is None

    @property
    def is_reassignment(self) -> bool:
        return not self.is_initial_assignment

    @property
    def summary(self) -> str:
        """Human-readable one-liner for timelines."""
        target = _party(self.to_user_id, self.to_team_id)
        if self.is_initial_assignment:
            return f"Assigned to {target}"
        return f"Reassigned from {_party(self.from_user_id, self.from_team_id)} to {target}"

    def __repr__(self) -> str:
        return (
            f"<AssignmentHistory(id={self.id}, case_id={self.case_id}, "
            f"reason={self.reason.value})>"
        )


def _party(user_id: int | None, team_id: int | None) -> str:
    parts = []
    if user_id is not None:
        parts.append(f"user {user_id}")
    if team_id is not None:
        parts.append(f"team {team_id}")
    return " / ".join(parts) or "nobody"


@event.listens_for(AssignmentHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise ValueError("Assignment history records are immutable")


@event.listens_for(AssignmentHistory, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise ValueError("Assignment history records cannot be deleted")
