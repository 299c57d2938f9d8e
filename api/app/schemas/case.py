"""Case-related schemas for AlertCase API."""

import enum
from datetime import datetime
from typing import Any

from pydantic import Field, model_validator

from app.models import (
    ActivityType,
    AssignmentReason,
    CaseCategory,
    CaseSeverity,
    CaseStatus,
    CommentType,
)
from app.schemas.common import BaseSchema, PaginatedResponse


class RequestedStatus(str, enum.Enum):
    """Statuses a client may ask for.

    Includes the workflow labels used by the operator console; these map onto
    real case statuses via ``STATUS_ALIASES`` in the lifecycle service.
    """
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"
    PENDING_CUSTOMER = "PENDING_CUSTOMER"
    PENDING_VENDOR = "PENDING_VENDOR"


class CaseCreate(BaseSchema):
    """Schema for opening a case by hand."""

    title: str = Field(..., min_length=3, max_length=500, description="Case title")
    description: str | None = Field(None, description="Detailed description")
    severity: CaseSeverity = Field(default=CaseSeverity.MEDIUM, description="Severity level")
    category: CaseCategory = Field(default=CaseCategory.CUSTOM, description="Case category")
    affected_services: str | None = Field(None, max_length=500)
    tags: list[str] | None = Field(None, description="Tags for categorization")
    assigned_user_id: int | None = Field(None, description="User to assign right away")
    assigned_team_id: int | None = Field(None, description="Team to assign right away")


class CaseResponse(BaseSchema):
    """Schema for case response."""

    id: int
    case_number: str = Field(..., examples=["CASE-2026-00001"])
    title: str
    description: str | None = None
    status: CaseStatus
    severity: CaseSeverity
    priority: int = Field(..., description="Derived from severity, 1=critical..4=low")
    category: CaseCategory
    grafana_alert_uid: str | None = None
    grafana_alert_id: str | None = None
    grafana_rule_uid: str | None = None
    assigned_user_ids: list[int] = Field(default_factory=list)
    assigned_team_ids: list[int] = Field(default_factory=list)
    assigned_by: int | None = None
    assigned_at: datetime | None = None
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    closed_by: int | None = None
    sla_deadline: datetime | None = None
    sla_breached: bool = False
    response_time_minutes: int | None = None
    resolution_time_minutes: int | None = None
    resolution: str | None = None
    root_cause: str | None = None
    closure_reason: str | None = None
    affected_services: str | None = None
    tags: list[str] | None = None
    alert_count: int = 1
    last_alert_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class CaseDetailResponse(CaseResponse):
    """Case with its raw alert snapshot."""

    alert_data: dict[str, Any] | None = None


class CaseListResponse(PaginatedResponse):
    """Paginated list of cases."""

    items: list[CaseResponse]


class AssignCaseRequest(BaseSchema):
    """Assign or reassign a case."""

    user_id: int | None = Field(None, description="User to assign")
    team_id: int | None = Field(None, description="Team to assign")
    reason: AssignmentReason | None = Field(None, description="Defaults to INITIAL or MANUAL")
    notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _require_assignee(self) -> "AssignCaseRequest":
        if self.user_id is None and self.team_id is None:
            raise ValueError("user_id or team_id is required")
        return self


class AcknowledgeCaseRequest(BaseSchema):
    comment: str | None = Field(None, max_length=5000)


class ResolveCaseRequest(BaseSchema):
    resolution: str = Field(..., min_length=1, max_length=5000, description="What was done")
    root_cause: str | None = Field(None, max_length=5000)


class ReopenCaseRequest(BaseSchema):
    reason: str = Field(..., min_length=1, max_length=2000)


class CloseCaseRequest(BaseSchema):
    reason: str | None = Field(None, max_length=2000)


class CancelCaseRequest(BaseSchema):
    reason: str | None = Field(None, max_length=2000)


class CaseStatusUpdate(BaseSchema):
    """Move a case to a requested status."""

    status: RequestedStatus
    note: str | None = Field(None, max_length=5000)


class CommentCreate(BaseSchema):
    comment: str = Field(..., min_length=1, max_length=10000)
    is_internal: bool = False


class CommentResponse(BaseSchema):
    id: int
    case_id: int
    user_id: int | None = None
    comment: str
    comment_type: CommentType
    is_internal: bool
    created_at: datetime


class ActivityResponse(BaseSchema):
    id: int
    case_id: int
    activity_type: ActivityType
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    description: str | None = None
    details: dict[str, Any] | None = None
    performed_by: int | None = None
    created_at: datetime


class AssignmentHistoryResponse(BaseSchema):
    id: int
    case_id: int
    from_user_id: int | None = None
    to_user_id: int | None = None
    from_team_id: int | None = None
    to_team_id: int | None = None
    reason: AssignmentReason
    assigned_by: int | None = None
    assigned_at: datetime
    notes: str | None = None
    from_user_open_cases: int | None = None
    to_user_open_cases: int | None = None
    from_team_open_cases: int | None = None
    to_team_open_cases: int | None = None
    is_initial_assignment: bool
    summary: str
