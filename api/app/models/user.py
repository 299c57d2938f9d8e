"""User and team reference models."""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class User(TimestampMixin, Base):
    """User model representing operators who own cases.

    Accounts are provisioned by the identity service; this table only keeps
    what case handling needs.

    Attributes:
        id: Integer primary key (inherited)
        username: Unique username
        email: Unique email address
        full_name: User's full display name
        role: Role name (admin, manager, operator, viewer)
        is_active: Whether the user account is active
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    role: Mapped[str] = mapped_column(
        String(20),
        default="operator",
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"


class Team(TimestampMixin, Base):
    """Team of operators that can own cases collectively.

    Attributes:
        id: Integer primary key (inherited)
        name: Unique team name
        lead_user_id: Optional team lead, used by TEAM_BASED rule assignment
        is_active: Whether the team accepts new cases
    """

    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
    )

    description: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )

    lead_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name='{self.name}')>"
