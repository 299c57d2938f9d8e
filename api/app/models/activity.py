"""Append-only activity and comment logs attached to cases."""

import enum
from typing import Any, Optional

from sqlalchemy import Boolean, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, TimestampMixin


class ActivityType(str, enum.Enum):
    """Enumeration of case activity types."""
    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    STATUS_CHANGE = "STATUS_CHANGE"
    RESOLVED = "RESOLVED"
    REOPENED = "REOPENED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"
    COMMENTED = "COMMENTED"
    REFIRED = "REFIRED"
    SLA_BREACHED = "SLA_BREACHED"


class CommentType(str, enum.Enum):
    """Who or what produced a comment."""
    USER = "USER"
    SYSTEM = "SYSTEM"
    ACTION = "ACTION"


class CaseActivity(TimestampMixin, Base):
    """One entry in a case's activity log.

    Attributes:
        case_id: Case the entry belongs to
        activity_type: What happened
        field_name: Changed field, for field-level changes
        old_value: Previous value, as text
        new_value: New value, as text
        performed_by: Acting user; NULL for the system
    """

    __tablename__ = "case_activities"

    case_id: Mapped[int] = mapped_column(
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    activity_type: Mapped[ActivityType] = mapped_column(
        Enum(ActivityType, name="case_activity_type_enum"),
        nullable=False,
    )

    field_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )

    old_value: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    new_value: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
    )

    performed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<CaseActivity(id={self.id}, case_id={self.case_id}, type={self.activity_type.value})>"


class CaseComment(TimestampMixin, Base):
    """Free-text comment on a case."""

    __tablename__ = "case_comments"

    case_id: Mapped[int] = mapped_column(
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    comment: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    comment_type: Mapped[CommentType] = mapped_column(
        Enum(CommentType, name="case_comment_type_enum"),
        default=CommentType.USER,
        nullable=False,
    )

    is_internal: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CaseComment(id={self.id}, case_id={self.case_id}, type={self.comment_type.value})>"
