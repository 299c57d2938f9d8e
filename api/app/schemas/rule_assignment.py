"""Rule assignment schemas for AlertCase API."""

from datetime import datetime

from pydantic import Field

from app.models import AssignmentStrategy, CaseCategory, CaseSeverity
from app.schemas.common import BaseSchema, PaginatedResponse


class RuleAssignmentUpsert(BaseSchema):
    """Create or update the assignment for a Grafana rule."""

    grafana_rule_name: str = Field(..., min_length=1, max_length=500, description="Rule title")
    grafana_folder_uid: str | None = Field(None, max_length=255)
    grafana_folder_name: str | None = Field(None, max_length=500)
    datasource_uid: str | None = Field(None, max_length=255)
    description: str | None = None
    severity: CaseSeverity | None = Field(None, description="Default severity; empty derives from labels")
    category: CaseCategory | None = Field(None, description="Default category; empty derives from labels")
    active: bool = True
    auto_assign_enabled: bool = True
    assignment_strategy: AssignmentStrategy = AssignmentStrategy.MANUAL
    user_ids: list[int] | None = Field(None, description="Replace linked users when given")
    team_ids: list[int] | None = Field(None, description="Replace linked teams when given")


class RuleAssignmentMembers(BaseSchema):
    """Users and teams to link or unlink."""

    user_ids: list[int] = Field(default_factory=list)
    team_ids: list[int] = Field(default_factory=list)


class RuleAssignmentResponse(BaseSchema):
    id: int
    grafana_rule_uid: str
    grafana_rule_name: str
    grafana_folder_uid: str | None = None
    grafana_folder_name: str | None = None
    datasource_uid: str | None = None
    description: str | None = None
    severity: CaseSeverity | None = None
    category: CaseCategory | None = None
    active: bool
    auto_assign_enabled: bool
    assignment_strategy: AssignmentStrategy
    assigned_user_ids: list[int] = Field(default_factory=list)
    assigned_team_ids: list[int] = Field(default_factory=list)
    has_assignments: bool
    created_by: int | None = None
    updated_by: int | None = None
    created_at: datetime
    updated_at: datetime


class RuleAssignmentListResponse(PaginatedResponse):
    items: list[RuleAssignmentResponse]


class GrafanaRuleInfo(BaseSchema):
    """Rule as reported by the Grafana provisioning API."""

    uid: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1, max_length=500)
    folder_uid: str | None = Field(None, alias="folderUID")
    folder_title: str | None = Field(None, alias="folderTitle")
    datasource_uid: str | None = None


class RuleSyncResponse(BaseSchema):
    created: int
    skipped: int
    total: int


class RuleAssignmentStatistics(BaseSchema):
    total_rules: int
    active_rules: int
    inactive_rules: int
    rules_with_assignments: int
    rules_without_assignments: int
