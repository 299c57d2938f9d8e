"""Case lifecycle: the status state machine and its side effects.

Legal moves live in the ``TRANSITIONS`` table. Every operation looks its target
status up before touching the case, so a rejected event leaves the case exactly
as it was.
"""

import enum
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DomainValidationError, InvalidTransitionError
from app.models import (
    ActivityType,
    AssignmentHistory,
    AssignmentReason,
    Case,
    CaseStatus,
    CaseTeamAssignment,
    CaseUserAssignment,
    CommentType,
    utcnow,
)
from app.schemas.case import RequestedStatus
from app.services.assignment_history_service import assignment_history_service
from app.services.case_service import case_service

logger = logging.getLogger(__name__)


class CaseEvent(str, enum.Enum):
    """Events that move a case through its lifecycle."""
    ASSIGN = "ASSIGN"
    ACKNOWLEDGE = "ACKNOWLEDGE"
    RESOLVE = "RESOLVE"
    REOPEN = "REOPEN"
    CLOSE = "CLOSE"
    CANCEL = "CANCEL"


# event -> {from status: to status}
TRANSITIONS: dict[CaseEvent, dict[CaseStatus, CaseStatus]] = {
    CaseEvent.ASSIGN: {
        CaseStatus.OPEN: CaseStatus.ASSIGNED,
        CaseStatus.ASSIGNED: CaseStatus.ASSIGNED,
        CaseStatus.IN_PROGRESS: CaseStatus.IN_PROGRESS,
    },
    CaseEvent.ACKNOWLEDGE: {
        CaseStatus.ASSIGNED: CaseStatus.IN_PROGRESS,
        CaseStatus.IN_PROGRESS: CaseStatus.IN_PROGRESS,
    },
    CaseEvent.RESOLVE: {
        CaseStatus.OPEN: CaseStatus.RESOLVED,
        CaseStatus.ASSIGNED: CaseStatus.RESOLVED,
        CaseStatus.IN_PROGRESS: CaseStatus.RESOLVED,
    },
    CaseEvent.REOPEN: {
        CaseStatus.RESOLVED: CaseStatus.IN_PROGRESS,
    },
    CaseEvent.CLOSE: {
        CaseStatus.RESOLVED: CaseStatus.CLOSED,
        CaseStatus.IN_PROGRESS: CaseStatus.CLOSED,
    },
    CaseEvent.CANCEL: {
        CaseStatus.OPEN: CaseStatus.CANCELLED,
        CaseStatus.ASSIGNED: CaseStatus.CANCELLED,
        CaseStatus.IN_PROGRESS: CaseStatus.CANCELLED,
        CaseStatus.RESOLVED: CaseStatus.CANCELLED,
    },
}

# Console workflow labels that are not statuses of their own
STATUS_ALIASES: dict[RequestedStatus, CaseStatus] = {
    RequestedStatus.PENDING_CUSTOMER: CaseStatus.IN_PROGRESS,
    RequestedStatus.PENDING_VENDOR: CaseStatus.IN_PROGRESS,
}

# Events that can reach a requested status, tried in order
STATUS_EVENTS: dict[CaseStatus, tuple[CaseEvent, ...]] = {
    CaseStatus.IN_PROGRESS: (CaseEvent.ACKNOWLEDGE, CaseEvent.REOPEN),
    CaseStatus.RESOLVED: (CaseEvent.RESOLVE,),
    CaseStatus.CLOSED: (CaseEvent.CLOSE,),
    CaseStatus.CANCELLED: (CaseEvent.CANCEL,),
}


def next_status(case: Case, event: CaseEvent) -> CaseStatus:
    """
    Status the case moves to on ``event``.

    Raises:
        InvalidTransitionError: If the event is not allowed from the current status
    """
    target = TRANSITIONS[event].get(case.status)
    if target is None:
        raise InvalidTransitionError(event.value, case.status.value)
    return target


def resolve_requested_status(requested: RequestedStatus) -> CaseStatus:
    """Map a requested status (including console aliases) onto a real status."""
    if requested in STATUS_ALIASES:
        return STATUS_ALIASES[requested]
    return CaseStatus(requested.value)


def _minutes_between(start: datetime | None, end: datetime) -> int | None:
    if start is None:
        return None
    return max(0, int((end - start).total_seconds() // 60))


class CaseLifecycleService:
    """Service applying lifecycle events to cases."""

    async def assign(
        self,
        db: AsyncSession,
        case: Case,
        *,
        actor_id: int | None,
        user_id: int | None = None,
        team_id: int | None = None,
        reason: AssignmentReason | None = None,
        notes: str | None = None,
        replace: bool = True,
        at: datetime | None = None,
    ) -> AssignmentHistory | None:
        """
        Assign a user and/or a team to a case.

        OPEN cases move to ASSIGNED; ASSIGNED and IN_PROGRESS cases keep their
        status and the call is a reassignment. With ``replace`` the given party
        takes the place of the current first assignee of its kind, otherwise it
        is appended. One history row is written per call that changes the
        assignees; assigning parties already in place changes nothing.

        Args:
            db: Database session
            case: Case to assign
            actor_id: Acting user, None for the system
            user_id: User to assign
            team_id: Team to assign
            reason: Ledger reason; defaults to INITIAL for a first assignment,
                MANUAL otherwise
            notes: Ledger notes
            replace: Replace the current assignee instead of adding to the set
            at: Event time (defaults to now)

        Returns:
            The history row, or None when nothing changed

        Raises:
            DomainValidationError: If neither user nor team is given
            InvalidTransitionError: If the case cannot be assigned in its status
            NotFoundError: If the user or team does not exist
        """
        if user_id is None and team_id is None:
            raise DomainValidationError("An assignment needs a user or a team")

        target = next_status(case, CaseEvent.ASSIGN)

        if user_id is not None:
            await case_service.ensure_user(db, user_id)
        if team_id is not None:
            await case_service.ensure_team(db, team_id)

        current_users = case.assigned_user_ids
        current_teams = case.assigned_team_ids

        if replace:
            user_changes = user_id is not None and current_users != [user_id]
            team_changes = team_id is not None and current_teams != [team_id]
        else:
            user_changes = user_id is not None and user_id not in current_users
            team_changes = team_id is not None and team_id not in current_teams

        if not user_changes and not team_changes:
            logger.info(f"Case {case.case_number} already assigned as requested, nothing to do")
            return None

        from_user_id = current_users[0] if replace and user_changes and current_users else None
        from_team_id = current_teams[0] if replace and team_changes and current_teams else None
        if reason is None:
            if from_user_id is None and from_team_id is None:
                reason = AssignmentReason.INITIAL
            else:
                reason = AssignmentReason.MANUAL

        at = at or utcnow()
        old_status = case.status

        entry = await assignment_history_service.record(
            db,
            case,
            reason=reason,
            actor_id=actor_id,
            from_user_id=from_user_id,
            to_user_id=user_id if user_changes else None,
            from_team_id=from_team_id,
            to_team_id=team_id if team_changes else None,
            notes=notes,
            assigned_at=at,
        )

        if user_changes:
            self._set_user(case, user_id, replace)
        if team_changes:
            self._set_team(case, team_id, replace)

        case.status = target
        case.assigned_by = actor_id
        if case.assigned_at is None:
            case.assigned_at = at
        case.updated_at = at
        await db.flush()

        if old_status != target:
            await case_service.add_activity(
                db,
                case,
                ActivityType.ASSIGNED,
                description=entry.summary,
                actor_id=actor_id,
                field_name="status",
                old_value=old_status,
                new_value=target,
                details={"reason": reason.value},
            )
        else:
            await case_service.add_activity(
                db,
                case,
                ActivityType.ASSIGNED,
                description=entry.summary,
                actor_id=actor_id,
                field_name="assignment",
                details={"reason": reason.value},
            )

        logger.info(f"Case {case.case_number}: {entry.summary} ({old_status.value} -> {target.value})")
        return entry

    @staticmethod
    def _set_user(case: Case, user_id: int, replace: bool) -> None:
        if not replace:
            case.user_assignments.append(
                CaseUserAssignment(user_id=user_id, position=len(case.user_assignments))
            )
            return
        kept = [a for a in case.user_assignments if a.user_id == user_id]
        if kept:
            kept[0].position = 0
            case.user_assignments[:] = kept[:1]
        else:
            case.user_assignments[:] = [CaseUserAssignment(user_id=user_id, position=0)]

    @staticmethod
    def _set_team(case: Case, team_id: int, replace: bool) -> None:
        if not replace:
            case.team_assignments.append(
                CaseTeamAssignment(team_id=team_id, position=len(case.team_assignments))
            )
            return
        kept = [a for a in case.team_assignments if a.team_id == team_id]
        if kept:
            kept[0].position = 0
            case.team_assignments[:] = kept[:1]
        else:
            case.team_assignments[:] = [CaseTeamAssignment(team_id=team_id, position=0)]

    async def acknowledge(
        self,
        db: AsyncSession,
        case: Case,
        *,
        actor_id: int | None,
        comment: str | None = None,
        at: datetime | None = None,
    ) -> Case:
        """
        Start working a case; the first acknowledgement sets the response time.

        Moving into IN_PROGRESS is logged as one ACKNOWLEDGED activity carrying
        the comment. Acknowledging a case already in progress only adds the
        comment.
        """
        target = next_status(case, CaseEvent.ACKNOWLEDGE)
        at = at or utcnow()
        old_status = case.status
        text = comment or "Case acknowledged"

        case.status = target
        if case.acknowledged_at is None:
            case.acknowledged_at = at
            case.response_time_minutes = _minutes_between(case.created_at, at)
        case.updated_at = at

        if old_status != target:
            await case_service.add_activity(
                db,
                case,
                ActivityType.ACKNOWLEDGED,
                description="Case acknowledged",
                actor_id=actor_id,
                field_name="status",
                old_value=old_status,
                new_value=target,
                details={"comment": text},
            )
        else:
            await case_service.add_comment(
                db,
                case,
                text,
                actor_id=actor_id,
                comment_type=CommentType.ACTION,
            )

        logger.info(f"Case {case.case_number} acknowledged by {actor_id}")
        return case

    async def resolve(
        self,
        db: AsyncSession,
        case: Case,
        *,
        actor_id: int | None,
        resolution: str,
        root_cause: str | None = None,
        at: datetime | None = None,
    ) -> Case:
        """
        Mark a case resolved.

        Sets ``resolved_at`` and the resolution time counted from creation.

        Raises:
            InvalidTransitionError: If the case is already resolved or finished
        """
        target = next_status(case, CaseEvent.RESOLVE)
        at = at or utcnow()
        old_status = case.status

        case.status = target
        case.resolved_at = at
        case.resolution_time_minutes = _minutes_between(case.created_at, at)
        case.resolution = resolution
        if root_cause:
            case.root_cause = root_cause
        case.updated_at = at

        await case_service.add_activity(
            db,
            case,
            ActivityType.RESOLVED,
            description=resolution,
            actor_id=actor_id,
            field_name="status",
            old_value=old_status,
            new_value=target,
        )

        logger.info(f"Case {case.case_number} resolved after {case.resolution_time_minutes} min")
        return case

    async def reopen(
        self,
        db: AsyncSession,
        case: Case,
        *,
        actor_id: int | None,
        reason: str,
        at: datetime | None = None,
    ) -> Case:
        """Put a resolved case back into work."""
        target = next_status(case, CaseEvent.REOPEN)
        at = at or utcnow()
        old_status = case.status

        case.status = target
        case.resolved_at = None
        case.closed_at = None
        case.resolution_time_minutes = None
        case.updated_at = at

        await case_service.add_activity(
            db,
            case,
            ActivityType.REOPENED,
            description=f"Case reopened: {reason}",
            actor_id=actor_id,
            field_name="status",
            old_value=old_status,
            new_value=target,
        )

        logger.info(f"Case {case.case_number} reopened: {reason}")
        return case

    async def close(
        self,
        db: AsyncSession,
        case: Case,
        *,
        actor_id: int | None,
        reason: str | None = None,
        at: datetime | None = None,
    ) -> Case:
        """
        Close a resolved or in-progress case.

        Closing stops the case from absorbing further alert re-fires.
        """
        target = next_status(case, CaseEvent.CLOSE)
        at = at or utcnow()
        old_status = case.status

        case.status = target
        case.closed_at = at
        case.closed_by = actor_id
        if case.resolved_at is None:
            case.resolved_at = at
            case.resolution_time_minutes = _minutes_between(case.created_at, at)
        if reason:
            case.closure_reason = reason
        case.open_fingerprint = None
        case.updated_at = at

        await case_service.add_activity(
            db,
            case,
            ActivityType.CLOSED,
            description=f"Case closed: {reason}" if reason else "Case closed",
            actor_id=actor_id,
            field_name="status",
            old_value=old_status,
            new_value=target,
        )

        logger.info(f"Case {case.case_number} closed")
        return case

    async def cancel(
        self,
        db: AsyncSession,
        case: Case,
        *,
        actor_id: int | None,
        reason: str | None = None,
        at: datetime | None = None,
    ) -> Case:
        """Cancel a case. Cancelled is terminal."""
        target = next_status(case, CaseEvent.CANCEL)
        at = at or utcnow()
        old_status = case.status

        case.status = target
        case.resolved_at = None
        case.resolution_time_minutes = None
        if reason:
            case.closure_reason = reason
        case.open_fingerprint = None
        case.updated_at = at

        await case_service.add_activity(
            db,
            case,
            ActivityType.CANCELLED,
            description=f"Case cancelled: {reason}" if reason else "Case cancelled",
            actor_id=actor_id,
            field_name="status",
            old_value=old_status,
            new_value=target,
        )

        logger.info(f"Case {case.case_number} cancelled")
        return case

    async def transition_to(
        self,
        db: AsyncSession,
        case: Case,
        requested: RequestedStatus,
        *,
        actor_id: int | None,
        note: str | None = None,
    ) -> Case:
        """
        Move a case to a requested status through the matching lifecycle event.

        OPEN and ASSIGNED cannot be requested directly; they are reached through
        creation and assignment.

        Raises:
            InvalidTransitionError: If no event reaches the status from the current one
        """
        target = resolve_requested_status(requested)
        events = STATUS_EVENTS.get(target)
        if not events:
            raise InvalidTransitionError(
                "SET_STATUS",
                case.status.value,
                f"Status {target.value} cannot be set directly",
            )

        event = next((e for e in events if case.status in TRANSITIONS[e]), None)
        if event is None:
            raise InvalidTransitionError(
                events[0].value,
                case.status.value,
                f"Cannot move a case from {case.status.value} to {target.value}",
            )

        if event == CaseEvent.ACKNOWLEDGE:
            return await self.acknowledge(db, case, actor_id=actor_id, comment=note)
        if event == CaseEvent.REOPEN:
            return await self.reopen(db, case, actor_id=actor_id, reason=note or "Status changed to IN_PROGRESS")
        if event == CaseEvent.RESOLVE:
            return await self.resolve(db, case, actor_id=actor_id, resolution=note or "Resolved")
        if event == CaseEvent.CLOSE:
            return await self.close(db, case, actor_id=actor_id, reason=note)
        return await self.cancel(db, case, actor_id=actor_id, reason=note)


# Singleton instance
case_lifecycle_service = CaseLifecycleService()
