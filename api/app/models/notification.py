"""Notification intent model.

Rows are written by case handling and drained by the external delivery job.
"""

import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, TimestampMixin, UTCDateTime


class NotificationAudience(str, enum.Enum):
    USER = "USER"
    TEAM = "TEAM"
    ADMINS = "ADMINS"


class NotificationEvent(str, enum.Enum):
    CASE_ASSIGNED = "CASE_ASSIGNED"
    TEAM_CASE_CREATED = "TEAM_CASE_CREATED"
    UNASSIGNED_CASE_CREATED = "UNASSIGNED_CASE_CREATED"
    CASE_RESOLVED = "CASE_RESOLVED"
    SLA_BREACHED = "SLA_BREACHED"


class NotificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class Notification(TimestampMixin, Base):
    """Something someone should be told about a case."""

    __tablename__ = "notifications"

    case_id: Mapped[int] = mapped_column(
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    audience: Mapped[NotificationAudience] = mapped_column(
        Enum(NotificationAudience, name="notification_audience_enum"),
        nullable=False,
    )

    recipient_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    recipient_team_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=True,
    )

    event_type: Mapped[NotificationEvent] = mapped_column(
        Enum(NotificationEvent, name="notification_event_enum"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
    )

    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus, name="notification_status_enum"),
        default=NotificationStatus.PENDING,
        nullable=False,
        index=True,
    )

    processed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, case_id={self.case_id}, "
            f"event={self.event_type.value}, status={self.status.value})>"
        )
