"""Rule assignments router for AlertCase API.

Administrators map Grafana alert rules to the users and teams responsible for
the cases those rules open. The ingestion pipeline reads these mappings for
every firing alert.
"""

import logging

from fastapi import APIRouter, Path, Query

from app.models import RuleAssignment
from app.routers.auth import AdminUser, CurrentUser, DbSession
from app.schemas.rule_assignment import (
    GrafanaRuleInfo,
    RuleAssignmentListResponse,
    RuleAssignmentMembers,
    RuleAssignmentResponse,
    RuleAssignmentStatistics,
    RuleAssignmentUpsert,
    RuleSyncResponse,
)
from app.services.rule_assignment_service import rule_assignment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rule-assignments", tags=["rule-assignments"])


def _response(rule: RuleAssignment) -> RuleAssignmentResponse:
    return RuleAssignmentResponse.model_validate(rule)


# =============================================================================
# Endpoints
# =============================================================================


@router.get(
    "",
    response_model=RuleAssignmentListResponse,
    summary="List rule assignments",
)
async def list_rule_assignments(
    db: DbSession,
    current_user: CurrentUser,
    search: str | None = Query(None, min_length=1, description="Search rule UID, name or folder"),
    active: bool | None = Query(None, description="Filter by active flag"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
) -> RuleAssignmentListResponse:
    rules, total = await rule_assignment_service.list_rules(
        db, search=search, active=active, page=page, page_size=page_size,
    )
    return RuleAssignmentListResponse(
        items=[_response(rule) for rule in rules],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=RuleAssignmentListResponse.calculate_total_pages(total, page_size),
    )


@router.get(
    "/my-assignments",
    response_model=list[RuleAssignmentResponse],
    summary="Rules assigned to me",
    description="Rules that link the current user directly or through a team they lead.",
)
async def my_rule_assignments(
    db: DbSession,
    current_user: CurrentUser,
) -> list[RuleAssignmentResponse]:
    rules = await rule_assignment_service.list_for_user(db, current_user.id)
    return [_response(rule) for rule in rules]


@router.get(
    "/statistics",
    response_model=RuleAssignmentStatistics,
    summary="Rule assignment statistics",
)
async def rule_assignment_statistics(
    db: DbSession,
    current_user: CurrentUser,
) -> RuleAssignmentStatistics:
    return RuleAssignmentStatistics(**await rule_assignment_service.get_statistics(db))


@router.post(
    "/sync-from-grafana",
    response_model=RuleSyncResponse,
    summary="Sync rules from Grafana",
    description=(
        "Create unassigned entries for Grafana rules that have none yet. The "
        "rule list is fetched from Grafana by the caller."
    ),
)
async def sync_from_grafana(
    rules: list[GrafanaRuleInfo],
    db: DbSession,
    admin: AdminUser,
) -> RuleSyncResponse:
    result = await rule_assignment_service.sync_from_grafana(db, rules, admin.id)
    return RuleSyncResponse(**result)


@router.get(
    "/grafana-rule/{rule_uid}",
    response_model=RuleAssignmentResponse,
    summary="Get rule assignment",
)
async def get_rule_assignment(
    db: DbSession,
    current_user: CurrentUser,
    rule_uid: str = Path(..., description="Grafana rule UID"),
) -> RuleAssignmentResponse:
    rule = await rule_assignment_service.get_required(db, rule_uid)
    return _response(rule)


@router.put(
    "/grafana-rule/{rule_uid}",
    response_model=RuleAssignmentResponse,
    summary="Create or update rule assignment",
)
async def upsert_rule_assignment(
    data: RuleAssignmentUpsert,
    db: DbSession,
    admin: AdminUser,
    rule_uid: str = Path(..., max_length=255, description="Grafana rule UID"),
) -> RuleAssignmentResponse:
    rule = await rule_assignment_service.upsert(db, rule_uid, data, admin.id)
    return _response(rule)


@router.post(
    "/grafana-rule/{rule_uid}/assign",
    response_model=RuleAssignmentResponse,
    summary="Link users and teams to a rule",
)
async def add_rule_members(
    members: RuleAssignmentMembers,
    db: DbSession,
    admin: AdminUser,
    rule_uid: str = Path(..., description="Grafana rule UID"),
) -> RuleAssignmentResponse:
    rule = await rule_assignment_service.add_members(
        db, rule_uid, members.user_ids, members.team_ids, admin.id,
    )
    return _response(rule)


@router.delete(
    "/grafana-rule/{rule_uid}/assign",
    response_model=RuleAssignmentResponse,
    summary="Unlink users and teams from a rule",
)
async def remove_rule_members(
    members: RuleAssignmentMembers,
    db: DbSession,
    admin: AdminUser,
    rule_uid: str = Path(..., description="Grafana rule UID"),
) -> RuleAssignmentResponse:
    rule = await rule_assignment_service.remove_members(
        db, rule_uid, members.user_ids, members.team_ids, admin.id,
    )
    return _response(rule)
