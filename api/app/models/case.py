"""Case model and its assignment join tables."""

import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, TimestampMixin, UTCDateTime


class CaseStatus(str, enum.Enum):
    """Enumeration of case statuses."""
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class CaseSeverity(str, enum.Enum):
    """Enumeration of case severity levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class CaseCategory(str, enum.Enum):
    """Enumeration of case categories."""
    REVENUE_LOSS = "REVENUE_LOSS"
    NETWORK_ISSUE = "NETWORK_ISSUE"
    FRAUD = "FRAUD"
    QUALITY = "QUALITY"
    OPERATIONAL = "OPERATIONAL"
    CUSTOM = "CUSTOM"


# Statuses in which someone is expected to work the case
ACTIVE_STATUSES = (CaseStatus.OPEN, CaseStatus.ASSIGNED, CaseStatus.IN_PROGRESS)

# Statuses that accept no further transitions
TERMINAL_STATUSES = (CaseStatus.CLOSED, CaseStatus.CANCELLED)

# Display priority derived from severity (1 = most urgent)
SEVERITY_PRIORITY = {
    CaseSeverity.CRITICAL: 1,
    CaseSeverity.HIGH: 2,
    CaseSeverity.MEDIUM: 3,
    CaseSeverity.LOW: 4,
}


class Case(TimestampMixin, Base):
    """Operational case, usually opened from a Grafana alert.

    Attributes:
        id: Integer primary key (inherited)
        case_number: Human-readable identifier (CASE-<year>-<seq>)
        grafana_alert_uid: Alert fingerprint used as the dedup key
        grafana_alert_id: Identifier of the alert occurrence that opened the case
        grafana_rule_uid: Grafana rule the alert came from, if known
        open_fingerprint: Equals the fingerprint while this case is the live
            dedup target; NULL otherwise. Unique, so at most one case per
            fingerprint can accept re-fires.
        severity: Canonical urgency; ``priority`` is derived from it
        sla_deadline: Target resolution time derived from severity
        alert_count: Number of alert deliveries folded into this case
        version: Optimistic lock counter
    """

    __tablename__ = "cases"

    case_number: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[CaseStatus] = mapped_column(
        Enum(CaseStatus, name="case_status_enum"),
        default=CaseStatus.OPEN,
        nullable=False,
        index=True,
    )

    severity: Mapped[CaseSeverity] = mapped_column(
        Enum(CaseSeverity, name="case_severity_enum"),
        default=CaseSeverity.MEDIUM,
        nullable=False,
        index=True,
    )

    category: Mapped[CaseCategory] = mapped_column(
        Enum(CaseCategory, name="case_category_enum"),
        default=CaseCategory.CUSTOM,
        nullable=False,
    )

    grafana_alert_uid: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    grafana_alert_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    grafana_rule_uid: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    open_fingerprint: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )

    assigned_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    assigned_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    closed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    closed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    sla_deadline: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        index=True,
    )

    sla_breached: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    response_time_minutes: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )

    resolution_time_minutes: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )

    resolution: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    root_cause: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    closure_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    affected_services: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )

    tags: Mapped[Optional[list[str]]] = mapped_column(
        JSONType,
        nullable=True,
    )

    alert_data: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
    )

    alert_count: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    last_alert_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Relationships
    user_assignments: Mapped[list["CaseUserAssignment"]] = relationship(
        "CaseUserAssignment",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="CaseUserAssignment.position",
        lazy="selectin",
    )

    team_assignments: Mapped[list["CaseTeamAssignment"]] = relationship(
        "CaseTeamAssignment",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="CaseTeamAssignment.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def priority(self) -> int:
        """Numeric priority derived from severity (1=critical..4=low)."""
        return SEVERITY_PRIORITY[self.severity]

    @property
    def assigned_user_ids(self) -> list[int]:
        return [a.user_id for a in self.user_assignments]

    @property
    def assigned_team_ids(self) -> list[int]:
        return [a.team_id for a in self.team_assignments]

    @property
    def has_assignment(self) -> bool:
        return bool(self.user_assignments or self.team_assignments)

    @property
    def is_active(self) -> bool:
        """Open, assigned or being worked on."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Case(id={self.id}, case_number='{self.case_number}', status={self.status.value})>"


class CaseUserAssignment(TimestampMixin, Base):
    """A user in a case's ordered set of assignees."""

    __tablename__ = "case_user_assignments"
    __table_args__ = (
        UniqueConstraint("case_id", "user_id", name="uq_case_user_assignment"),
    )

    case_id: Mapped[int] = mapped_column(
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    case: Mapped["Case"] = relationship(
        "Case",
        back_populates="user_assignments",
    )


class CaseTeamAssignment(TimestampMixin, Base):
    """A team in a case's ordered set of assignees."""

    __tablename__ = "case_team_assignments"
    __table_args__ = (
        UniqueConstraint("case_id", "team_id", name="uq_case_team_assignment"),
    )

    case_id: Mapped[int] = mapped_column(
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    team_id: Mapped[int] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    case: Mapped["Case"] = relationship(
        "Case",
        back_populates="team_assignments",
    )


class CaseSequence(Base):
    """Per-year counter used to number cases."""

    __tablename__ = "case_sequences"

    year: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
    )

    last_value: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
