"""Grafana rule to owner mapping models."""

import enum
from typing import Optional

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin
from .case import CaseCategory, CaseSeverity


class AssignmentStrategy(str, enum.Enum):
    """How assignees are picked from a rule's linked users and teams."""
    MANUAL = "MANUAL"
    ROUND_ROBIN = "ROUND_ROBIN"
    LOAD_BASED = "LOAD_BASED"
    TEAM_BASED = "TEAM_BASED"


class RuleAssignment(TimestampMixin, Base):
    """Maps one Grafana alert rule to the people responsible for its cases.

    Attributes:
        grafana_rule_uid: Grafana rule UID (unique)
        grafana_rule_name: Rule title as shown in Grafana
        severity: Default severity for cases; NULL derives it from alert labels
        category: Default category for cases; NULL derives it from alert labels
        active: Inactive rules drop their alerts
        auto_assign_enabled: Whether cases are assigned on creation
        assignment_strategy: How assignees are chosen
        rotation_cursor: Next index for ROUND_ROBIN
    """

    __tablename__ = "rule_assignments"

    grafana_rule_uid: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    grafana_rule_name: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    grafana_folder_uid: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    grafana_folder_name: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )

    datasource_uid: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    severity: Mapped[Optional[CaseSeverity]] = mapped_column(
        Enum(CaseSeverity, name="case_severity_enum"),
        nullable=True,
    )

    category: Mapped[Optional[CaseCategory]] = mapped_column(
        Enum(CaseCategory, name="case_category_enum"),
        nullable=True,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    auto_assign_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    assignment_strategy: Mapped[AssignmentStrategy] = mapped_column(
        Enum(AssignmentStrategy, name="assignment_strategy_enum"),
        default=AssignmentStrategy.MANUAL,
        nullable=False,
    )

    rotation_cursor: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    updated_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Relationships
    user_links: Mapped[list["RuleAssignmentUser"]] = relationship(
        "RuleAssignmentUser",
        cascade="all, delete-orphan",
        order_by="RuleAssignmentUser.position",
        lazy="selectin",
    )

    team_links: Mapped[list["RuleAssignmentTeam"]] = relationship(
        "RuleAssignmentTeam",
        cascade="all, delete-orphan",
        order_by="RuleAssignmentTeam.position",
        lazy="selectin",
    )

    @property
    def assigned_user_ids(self) -> list[int]:
        return [link.user_id for link in self.user_links]

    @property
    def assigned_team_ids(self) -> list[int]:
        return [link.team_id for link in self.team_links]

    @property
    def has_assignments(self) -> bool:
        return bool(self.user_links or self.team_links)

    def __repr__(self) -> str:
        return f"<RuleAssignment(id={self.id}, rule_uid='{self.grafana_rule_uid}', active={self.active})>"


class RuleAssignmentUser(TimestampMixin, Base):
    """User linked to a rule assignment."""

    __tablename__ = "rule_assignment_users"
    __table_args__ = (
        UniqueConstraint("rule_assignment_id", "user_id", name="uq_rule_assignment_user"),
    )

    rule_assignment_id: Mapped[int] = mapped_column(
        ForeignKey("rule_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class RuleAssignmentTeam(TimestampMixin, Base):
    """Team linked to a rule assignment."""

    __tablename__ = "rule_assignment_teams"
    __table_args__ = (
        UniqueConstraint("rule_assignment_id", "team_id", name="uq_rule_assignment_team"),
    )

    rule_assignment_id: Mapped[int] = mapped_column(
        ForeignKey("rule_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    team_id: Mapped[int] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
