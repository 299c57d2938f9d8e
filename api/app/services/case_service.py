"""Case service: numbering, persistence and queries for cases."""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.exceptions import NotFoundError
from app.models import (
    ACTIVE_STATUSES,
    ActivityType,
    Case,
    CaseActivity,
    CaseCategory,
    CaseComment,
    CaseSequence,
    CaseSeverity,
    CaseStatus,
    CaseTeamAssignment,
    CaseUserAssignment,
    CommentType,
    Team,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)


def _enum_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(getattr(value, "value", value))


class CaseService:
    """Service for creating, numbering and querying cases."""

    async def generate_case_number(
        self,
        db: AsyncSession,
        year: int | None = None,
    ) -> str:
        """
        Generate the next case number by incrementing the case_sequences table.

        The increment is a single UPDATE ... RETURNING, so concurrent writers are
        serialized by the row lock. The first case of a year inserts the row;
        a lost insert race falls back to the update.

        Args:
            db: Database session
            year: Calendar year of the case (defaults to the current UTC year)

        Returns:
            Case number in CASE-<year>-<5-digit seq> format (e.g. 'CASE-2026-00001')
        """
        year = year or utcnow().year
        table = CaseSequence.__table__

        try:
            result = await db.execute(
                update(table)
                .where(table.c.year == year)
                .values(last_value=table.c.last_value + 1)
                .returning(table.c.last_value)
            )
            value = result.scalar_one_or_none()

            if value is None:
                try:
                    async with db.begin_nested():
                        await db.execute(insert(table).values(year=year, last_value=1))
                    value = 1
                except IntegrityError:
                    result = await db.execute(
                        update(table)
                        .where(table.c.year == year)
                        .values(last_value=table.c.last_value + 1)
                        .returning(table.c.last_value)
                    )
                    value = result.scalar_one()

            case_number = f"CASE-{year}-{value:05d}"
            logger.info(f"Generated case number: {case_number}")
            return case_number

        except Exception as e:
            logger.error(f"Failed to generate case number: {e}")
            raise

    def calculate_sla_deadline(self, severity: CaseSeverity, start: datetime) -> datetime:
        """SLA deadline for a severity, counted from ``start``."""
        return start + timedelta(hours=get_settings().sla_hours_for(severity))

    async def create_case(
        self,
        db: AsyncSession,
        *,
        title: str,
        severity: CaseSeverity,
        category: CaseCategory,
        description: str | None = None,
        created_at: datetime | None = None,
        actor_id: int | None = None,
        grafana_alert_uid: str | None = None,
        grafana_alert_id: str | None = None,
        grafana_rule_uid: str | None = None,
        open_fingerprint: str | None = None,
        affected_services: str | None = None,
        tags: list[str] | None = None,
        alert_data: dict[str, Any] | None = None,
    ) -> Case:
        """
        Insert a new OPEN case and its CREATED activity.

        Args:
            db: Database session
            title: Case title
            severity: Severity; drives the SLA deadline
            category: Case category
            created_at: Creation time (defaults to now)
            actor_id: Acting user, None for the system
            open_fingerprint: Dedup marker; a duplicate raises IntegrityError on flush

        Returns:
            The flushed case, with its id assigned
        """
        created_at = created_at or utcnow()
        case_number = await self.generate_case_number(db, created_at.year)

        case = Case(
            case_number=case_number,
            title=title,
            description=description,
            status=CaseStatus.OPEN,
            severity=severity,
            category=category,
            grafana_alert_uid=grafana_alert_uid,
            grafana_alert_id=grafana_alert_id,
            grafana_rule_uid=grafana_rule_uid,
            open_fingerprint=open_fingerprint,
            sla_deadline=self.calculate_sla_deadline(severity, created_at),
            affected_services=affected_services,
            tags=tags,
            alert_data=alert_data,
            alert_count=1,
            user_assignments=[],
            team_assignments=[],
            last_alert_at=created_at if grafana_alert_uid else None,
            created_at=created_at,
            updated_at=created_at,
        )
        db.add(case)
        await db.flush()

        await self.add_activity(
            db,
            case,
            ActivityType.CREATED,
            description=f"Case {case_number} created",
            actor_id=actor_id,
            details={"source": "grafana" if grafana_alert_uid else "manual"},
        )

        logger.info(f"Created case {case_number} (severity={severity.value})")
        return case

    async def get_case(self, db: AsyncSession, case_id: int) -> Case:
        """
        Get a case by primary key.

        Raises:
            NotFoundError: If the case does not exist
        """
        case = await db.get(Case, case_id)
        if case is None:
            raise NotFoundError("Case", case_id)
        return case

    async def get_case_by_reference(self, db: AsyncSession, reference: str) -> Case:
        """Get a case by numeric id or by case number."""
        if reference.isdigit():
            return await self.get_case(db, int(reference))

        result = await db.execute(select(Case).where(Case.case_number == reference.upper()))
        case = result.scalar_one_or_none()
        if case is None:
            raise NotFoundError("Case", reference)
        return case

    async def reload_cases(self, db: AsyncSession, case_ids: list[int]) -> list[Case]:
        """Fetch cases fresh from the database, keeping the order of ``case_ids``."""
        if not case_ids:
            return []
        result = await db.execute(
            select(Case)
            .where(Case.id.in_(case_ids))
            .execution_options(populate_existing=True)
        )
        by_id = {case.id: case for case in result.scalars().all()}
        return [by_id[case_id] for case_id in case_ids if case_id in by_id]

    async def list_cases(
        self,
        db: AsyncSession,
        status: CaseStatus | None = None,
        severity: CaseSeverity | None = None,
        category: CaseCategory | None = None,
        assigned_user_id: int | None = None,
        assigned_team_id: int | None = None,
        unassigned: bool | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Case], int]:
        """
        List cases with filtering and pagination.

        Returns:
            Tuple of (cases for the page, total matching count)
        """
        conditions = []
        if status is not None:
            conditions.append(Case.status == status)
        if severity is not None:
            conditions.append(Case.severity == severity)
        if category is not None:
            conditions.append(Case.category == category)
        if assigned_user_id is not None:
            conditions.append(
                Case.id.in_(
                    select(CaseUserAssignment.case_id).where(
                        CaseUserAssignment.user_id == assigned_user_id
                    )
                )
            )
        if assigned_team_id is not None:
            conditions.append(
                Case.id.in_(
                    select(CaseTeamAssignment.case_id).where(
                        CaseTeamAssignment.team_id == assigned_team_id
                    )
                )
            )
        if unassigned:
            conditions.append(~Case.user_assignments.any())
            conditions.append(~Case.team_assignments.any())
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Case.title.ilike(pattern),
                    Case.description.ilike(pattern),
                    Case.case_number.ilike(pattern),
                    Case.grafana_alert_uid.ilike(pattern),
                )
            )

        count_result = await db.execute(select(func.count(Case.id)).where(*conditions))
        total = count_result.scalar_one()

        result = await db.execute(
            select(Case)
            .where(*conditions)
            .order_by(Case.created_at.desc(), Case.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def count_open_cases_for_user(self, db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            select(func.count(CaseUserAssignment.id))
            .join(Case, Case.id == CaseUserAssignment.case_id)
            .where(
                CaseUserAssignment.user_id == user_id,
                Case.status.in_(ACTIVE_STATUSES),
            )
        )
        return result.scalar_one()

    async def count_open_cases_for_team(self, db: AsyncSession, team_id: int) -> int:
        result = await db.execute(
            select(func.count(CaseTeamAssignment.id))
            .join(Case, Case.id == CaseTeamAssignment.case_id)
            .where(
                CaseTeamAssignment.team_id == team_id,
                Case.status.in_(ACTIVE_STATUSES),
            )
        )
        return result.scalar_one()

    async def ensure_user(self, db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def ensure_team(self, db: AsyncSession, team_id: int) -> Team:
        team = await db.get(Team, team_id)
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    # =========================================================================
    # Activity & comments
    # =========================================================================

    async def add_activity(
        self,
        db: AsyncSession,
        case: Case,
        activity_type: ActivityType,
        *,
        description: str | None = None,
        actor_id: int | None = None,
        field_name: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        details: dict[str, Any] | None = None,
    ) -> CaseActivity:
        """Append an entry to the case's activity log."""
        activity = CaseActivity(
            case_id=case.id,
            activity_type=activity_type,
            field_name=field_name,
            old_value=_enum_text(old_value),
            new_value=_enum_text(new_value),
            description=description,
            details=details,
            performed_by=actor_id,
        )
        db.add(activity)
        await db.flush()
        return activity

    async def add_comment(
        self,
        db: AsyncSession,
        case: Case,
        comment: str,
        *,
        actor_id: int | None = None,
        comment_type: CommentType = CommentType.USER,
        is_internal: bool = False,
    ) -> CaseComment:
        """Append a comment to the case."""
        entry = CaseComment(
            case_id=case.id,
            user_id=actor_id,
            comment=comment,
            comment_type=comment_type,
            is_internal=is_internal,
        )
        db.add(entry)
        await db.flush()
        return entry

    async def list_activities(self, db: AsyncSession, case_id: int) -> list[CaseActivity]:
        result = await db.execute(
            select(CaseActivity)
            .where(CaseActivity.case_id == case_id)
            .order_by(CaseActivity.created_at, CaseActivity.id)
        )
        return list(result.scalars().all())

    async def list_comments(
        self,
        db: AsyncSession,
        case_id: int,
        include_internal: bool = True,
    ) -> list[CaseComment]:
        query = select(CaseComment).where(CaseComment.case_id == case_id)
        if not include_internal:
            query = query.where(CaseComment.is_internal.is_(False))
        result = await db.execute(query.order_by(CaseComment.created_at, CaseComment.id))
        return list(result.scalars().all())


# Singleton instance
case_service = CaseService()
