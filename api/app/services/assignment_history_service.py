"""Assignment history ledger.

Append-only record of every assignment event with a workload snapshot of the
parties involved. Snapshot failures never abort the assignment itself.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import AssignmentHistory, AssignmentReason, Case, utcnow
from app.services.case_service import case_service

logger = logging.getLogger(__name__)


class AssignmentHistoryService:
    """Service for writing and reading the assignment ledger."""

    async def record(
        self,
        db: AsyncSession,
        case: Case,
        *,
        reason: AssignmentReason,
        actor_id: int | None = None,
        from_user_id: int | None = None,
        to_user_id: int | None = None,
        from_team_id: int | None = None,
        to_team_id: int | None = None,
        notes: str | None = None,
        assigned_at: datetime | None = None,
    ) -> AssignmentHistory:
        """
        Append one assignment event.

        Open-case counts for every party are captured before the new assignment
        takes effect. If they cannot be computed the row is written with NULL
        snapshots.

        Args:
            db: Database session
            case: Case being assigned
            reason: Why the case changed hands
            actor_id: Acting user, None for the system
            from_user_id / from_team_id: Parties being replaced, if any
            to_user_id / to_team_id: Parties receiving the case
            notes: Free-text notes

        Returns:
            The flushed history row
        """
        snapshot = await self._workload_snapshot(
            db,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            from_team_id=from_team_id,
            to_team_id=to_team_id,
        )

        entry = AssignmentHistory(
            case_id=case.id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            from_team_id=from_team_id,
            to_team_id=to_team_id,
            reason=reason,
            assigned_by=actor_id,
            assigned_at=assigned_at or utcnow(),
            notes=notes,
            **snapshot,
        )
        db.add(entry)
        await db.flush()

        logger.info(f"Recorded assignment for case {case.case_number}: {entry.summary} ({reason.value})")
        return entry

    async def _workload_snapshot(
        self,
        db: AsyncSession,
        *,
        from_user_id: int | None,
        to_user_id: int | None,
        from_team_id: int | None,
        to_team_id: int | None,
    ) -> dict[str, int | None]:
        snapshot: dict[str, int | None] = {
            "from_user_open_cases": None,
            "to_user_open_cases": None,
            "from_team_open_cases": None,
            "to_team_open_cases": None,
        }
        try:
            async with db.begin_nested():
                if from_user_id is not None:
                    snapshot["from_user_open_cases"] = await case_service.count_open_cases_for_user(db, from_user_id)
                if to_user_id is not None:
                    snapshot["to_user_open_cases"] = await case_service.count_open_cases_for_user(db, to_user_id)
                if from_team_id is not None:
                    snapshot["from_team_open_cases"] = await case_service.count_open_cases_for_team(db, from_team_id)
                if to_team_id is not None:
                    snapshot["to_team_open_cases"] = await case_service.count_open_cases_for_team(db, to_team_id)
        except SQLAlchemyError as e:
            logger.warning(f"Workload snapshot unavailable, recording without it: {e}")
            return dict.fromkeys(snapshot)
        return snapshot

    async def list_for_case(self, db: AsyncSession, case_id: int) -> list[AssignmentHistory]:
        """Assignment events of a case, oldest first."""
        result = await db.execute(
            select(AssignmentHistory)
            .where(AssignmentHistory.case_id == case_id)
            .order_by(AssignmentHistory.assigned_at, AssignmentHistory.id)
        )
        return list(result.scalars().all())


# Singleton instance
assignment_history_service = AssignmentHistoryService()
