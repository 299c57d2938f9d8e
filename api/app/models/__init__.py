"""SQLAlchemy models for AlertCase.

This module exports all database models and their associated enums
for use throughout the application.
"""

from .activity import ActivityType, CaseActivity, CaseComment, CommentType
from .assignment_history import AssignmentHistory, AssignmentReason
from .base import Base, utcnow
from .case import (
    ACTIVE_STATUSES,
    SEVERITY_PRIORITY,
    TERMINAL_STATUSES,
    Case,
    CaseCategory,
    CaseSequence,
    CaseSeverity,
    CaseStatus,
    CaseTeamAssignment,
    CaseUserAssignment,
)
from .notification import (
    Notification,
    NotificationAudience,
    NotificationEvent,
    NotificationStatus,
)
from .rule_assignment import (
    AssignmentStrategy,
    RuleAssignment,
    RuleAssignmentTeam,
    RuleAssignmentUser,
)
from .user import Team, User

__all__ = [
    # Base
    "Base",
    "utcnow",

    # Users
    "User",
    "Team",

    # Case
    "Case",
    "CaseStatus",
    "CaseSeverity",
    "CaseCategory",
    "CaseSequence",
    "CaseUserAssignment",
    "CaseTeamAssignment",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "SEVERITY_PRIORITY",

    # Activity
    "CaseActivity",
    "CaseComment",
    "ActivityType",
    "CommentType",

    # Assignment history
    "AssignmentHistory",
    "AssignmentReason",

    # Rule assignment
    "RuleAssignment",
    "RuleAssignmentUser",
    "RuleAssignmentTeam",
    "AssignmentStrategy",

    # Notification
    "Notification",
    "NotificationAudience",
    "NotificationEvent",
    "NotificationStatus",
]
