"""Cases router for AlertCase API.

This module provides endpoints for querying cases and driving them through
their lifecycle: assignment, acknowledgement, resolution, reopening, closing
and cancellation, plus comments, activity and assignment history.

Domain errors raised by the services (unknown case, illegal transition) are
turned into HTTP responses by the application's exception handlers.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Path, Query
from fastapi import status as http_status

from app.models import ActivityType, CaseCategory, CaseSeverity, CaseStatus
from app.routers.auth import CurrentUser, DbSession
from app.schemas.case import (
    AcknowledgeCaseRequest,
    ActivityResponse,
    AssignCaseRequest,
    AssignmentHistoryResponse,
    CancelCaseRequest,
    CaseCreate,
    CaseDetailResponse,
    CaseListResponse,
    CaseResponse,
    CaseStatusUpdate,
    CloseCaseRequest,
    CommentCreate,
    CommentResponse,
    ReopenCaseRequest,
    ResolveCaseRequest,
)
from app.services.assignment_history_service import assignment_history_service
from app.services.case_lifecycle_service import case_lifecycle_service
from app.services.case_service import case_service
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cases", tags=["cases"])

CaseRef = Annotated[str, Path(description="Numeric case ID or case number (e.g. CASE-2026-00001)")]


# =============================================================================
# Endpoints
# =============================================================================


@router.get(
    "",
    response_model=CaseListResponse,
    summary="List cases",
    description="Retrieve a paginated list of cases with optional filtering.",
)
async def list_cases(
    db: DbSession,
    current_user: CurrentUser,
    status: CaseStatus | None = Query(None, description="Filter by case status"),
    severity: CaseSeverity | None = Query(None, description="Filter by severity"),
    category: CaseCategory | None = Query(None, description="Filter by category"),
    assigned_user_id: int | None = Query(None, description="Cases assigned to this user"),
    assigned_team_id: int | None = Query(None, description="Cases assigned to this team"),
    unassigned: bool | None = Query(None, description="Only cases without any assignee"),
    search: str | None = Query(None, min_length=2, description="Search title, description, case number, fingerprint"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
) -> CaseListResponse:
    """
    List cases with filtering and pagination.

    - **status**: OPEN, ASSIGNED, IN_PROGRESS, RESOLVED, CLOSED, CANCELLED
    - **severity**: LOW, MEDIUM, HIGH, CRITICAL
    - **unassigned**: only cases with neither a user nor a team
    - **search**: matched against title, description, case number and fingerprint
    """
    cases, total = await case_service.list_cases(
        db,
        status=status,
        severity=severity,
        category=category,
        assigned_user_id=assigned_user_id,
        assigned_team_id=assigned_team_id,
        unassigned=unassigned,
        search=search,
        page=page,
        page_size=page_size,
    )

    return CaseListResponse(
        items=[CaseResponse.model_validate(case) for case in cases],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=CaseListResponse.calculate_total_pages(total, page_size),
    )


@router.post(
    "",
    response_model=CaseDetailResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Create a case",
    description="Open a case by hand, optionally assigning it right away.",
)
async def create_case(
    case_data: CaseCreate,
    db: DbSession,
    current_user: CurrentUser,
) -> CaseDetailResponse:
    """
    Open a new case.

    The case number is generated as CASE-<year>-<sequence>. When an assignee
    is given the case moves straight to ASSIGNED with an INITIAL history row.
    """
    case = await case_service.create_case(
        db,
        title=case_data.title,
        description=case_data.description,
        severity=case_data.severity,
        category=case_data.category,
        affected_services=case_data.affected_services,
        tags=case_data.tags,
        actor_id=current_user.id,
    )

    if case_data.assigned_user_id is not None or case_data.assigned_team_id is not None:
        await case_lifecycle_service.assign(
            db,
            case,
            actor_id=current_user.id,
            user_id=case_data.assigned_user_id,
            team_id=case_data.assigned_team_id,
        )

    await notification_service.notify_case_created(db, case)
    await db.flush()

    logger.info(f"User {current_user.id} opened case {case.case_number}")
    return CaseDetailResponse.model_validate(case)


@router.get(
    "/{case_ref}",
    response_model=CaseDetailResponse,
    summary="Get case",
    description="Retrieve a case by numeric ID or case number.",
)
async def get_case(
    case_ref: CaseRef,
    db: DbSession,
    current_user: CurrentUser,
) -> CaseDetailResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    return CaseDetailResponse.model_validate(case)


# =============================================================================
# Lifecycle
# =============================================================================


@router.post(
    "/{case_ref}/assign",
    response_model=CaseResponse,
    summary="Assign case",
    description="Assign a user and/or team. Reassigns when the case already has an owner.",
)
async def assign_case(
    case_ref: CaseRef,
    request_data: AssignCaseRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> CaseResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    await case_lifecycle_service.assign(
        db,
        case,
        actor_id=current_user.id,
        user_id=request_data.user_id,
        team_id=request_data.team_id,
        reason=request_data.reason,
        notes=request_data.notes,
    )
    await db.flush()
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_ref}/acknowledge",
    response_model=CaseResponse,
    summary="Acknowledge case",
)
async def acknowledge_case(
    case_ref: CaseRef,
    db: DbSession,
    current_user: CurrentUser,
    request_data: AcknowledgeCaseRequest | None = None,
) -> CaseResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    await case_lifecycle_service.acknowledge(
        db,
        case,
        actor_id=current_user.id,
        comment=request_data.comment if request_data else None,
    )
    await db.flush()
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_ref}/resolve",
    response_model=CaseResponse,
    summary="Resolve case",
)
async def resolve_case(
    case_ref: CaseRef,
    request_data: ResolveCaseRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> CaseResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    await case_lifecycle_service.resolve(
        db,
        case,
        actor_id=current_user.id,
        resolution=request_data.resolution,
        root_cause=request_data.root_cause,
    )
    await db.flush()
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_ref}/reopen",
    response_model=CaseResponse,
    summary="Reopen case",
)
async def reopen_case(
    case_ref: CaseRef,
    request_data: ReopenCaseRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> CaseResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    await case_lifecycle_service.reopen(db, case, actor_id=current_user.id, reason=request_data.reason)
    await db.flush()
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_ref}/close",
    response_model=CaseResponse,
    summary="Close case",
)
async def close_case(
    case_ref: CaseRef,
    db: DbSession,
    current_user: CurrentUser,
    request_data: CloseCaseRequest | None = None,
) -> CaseResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    await case_lifecycle_service.close(
        db,
        case,
        actor_id=current_user.id,
        reason=request_data.reason if request_data else None,
    )
    await db.flush()
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_ref}/cancel",
    response_model=CaseResponse,
    summary="Cancel case",
)
async def cancel_case(
    case_ref: CaseRef,
    db: DbSession,
    current_user: CurrentUser,
    request_data: CancelCaseRequest | None = None,
) -> CaseResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    await case_lifecycle_service.cancel(
        db,
        case,
        actor_id=current_user.id,
        reason=request_data.reason if request_data else None,
    )
    await db.flush()
    return CaseResponse.model_validate(case)


@router.put(
    "/{case_ref}/status",
    response_model=CaseResponse,
    summary="Set case status",
    description=(
        "Move a case to a requested status. Console workflow labels such as "
        "PENDING_CUSTOMER and PENDING_VENDOR map to IN_PROGRESS."
    ),
)
async def update_case_status(
    case_ref: CaseRef,
    request_data: CaseStatusUpdate,
    db: DbSession,
    current_user: CurrentUser,
) -> CaseResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    await case_lifecycle_service.transition_to(
        db,
        case,
        request_data.status,
        actor_id=current_user.id,
        note=request_data.note,
    )
    await db.flush()
    return CaseResponse.model_validate(case)


# =============================================================================
# Comments, activity, history
# =============================================================================


@router.get(
    "/{case_ref}/comments",
    response_model=list[CommentResponse],
    summary="List case comments",
)
async def list_comments(
    case_ref: CaseRef,
    db: DbSession,
    current_user: CurrentUser,
    include_internal: bool = Query(True, description="Include internal comments"),
) -> list[CommentResponse]:
    case = await case_service.get_case_by_reference(db, case_ref)
    comments = await case_service.list_comments(db, case.id, include_internal=include_internal)
    return [CommentResponse.model_validate(comment) for comment in comments]


@router.post(
    "/{case_ref}/comments",
    response_model=CommentResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Add case comment",
)
async def add_comment(
    case_ref: CaseRef,
    comment_data: CommentCreate,
    db: DbSession,
    current_user: CurrentUser,
) -> CommentResponse:
    case = await case_service.get_case_by_reference(db, case_ref)
    comment = await case_service.add_comment(
        db,
        case,
        comment_data.comment,
        actor_id=current_user.id,
        is_internal=comment_data.is_internal,
    )
    await case_service.add_activity(
        db,
        case,
        ActivityType.COMMENTED,
        description="Comment added",
        actor_id=current_user.id,
        details={"comment_id": comment.id, "is_internal": comment.is_internal},
    )
    return CommentResponse.model_validate(comment)


@router.get(
    "/{case_ref}/activities",
    response_model=list[ActivityResponse],
    summary="List case activity",
)
async def list_activities(
    case_ref: CaseRef,
    db: DbSession,
    current_user: CurrentUser,
) -> list[ActivityResponse]:
    case = await case_service.get_case_by_reference(db, case_ref)
    activities = await case_service.list_activities(db, case.id)
    return [ActivityResponse.model_validate(activity) for activity in activities]


@router.get(
    "/{case_ref}/assignment-history",
    response_model=list[AssignmentHistoryResponse],
    summary="List assignment history",
    description="Every assignment event of the case, oldest first, with workload snapshots.",
)
async def list_assignment_history(
    case_ref: CaseRef,
    db: DbSession,
    current_user: CurrentUser,
) -> list[AssignmentHistoryResponse]:
    case = await case_service.get_case_by_reference(db, case_ref)
    history = await assignment_history_service.list_for_case(db, case.id)
    return [AssignmentHistoryResponse.model_validate(entry) for entry in history]
