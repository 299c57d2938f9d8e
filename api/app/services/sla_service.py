"""SLA breach detection for open cases."""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ACTIVE_STATUSES, ActivityType, Case, NotificationEvent, utcnow
from app.services.case_service import case_service
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)


class SLAService:
    """Flags cases that are still being worked after their SLA deadline."""

    async def find_due(self, db: AsyncSession, now: datetime, limit: int = 500) -> list[Case]:
        result = await db.execute(
            select(Case)
            .where(
                Case.status.in_(ACTIVE_STATUSES),
                Case.sla_breached.is_(False),
                Case.sla_deadline.is_not(None),
                Case.sla_deadline < now,
            )
            .order_by(Case.sla_deadline, Case.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_breaches(self, db: AsyncSession, now: datetime | None = None) -> list[Case]:
        """
        Mark every overdue active case as breached.

        Each breached case gets an SLA_BREACHED activity and notification
        intents for its assignees (or the admins when it has none). A case is
        only ever flagged once.

        Args:
            db: Database session
            now: Reference time (defaults to now)

        Returns:
            Cases flagged by this sweep
        """
        now = now or utcnow()
        breached = await self.find_due(db, now)

        for case in breached:
            case.sla_breached = True
            case.updated_at = now
            overdue = int((now - case.sla_deadline).total_seconds() // 60)

            await case_service.add_activity(
                db,
                case,
                ActivityType.SLA_BREACHED,
                description=f"SLA deadline passed {overdue} min ago",
                field_name="sla_breached",
                old_value="False",
                new_value="True",
                details={"sla_deadline": case.sla_deadline.isoformat()},
            )

            title = f"SLA Breached: {case.case_number}"
            message = f"{case.severity.value} case {case.case_number} is past its SLA deadline"
            if case.has_assignment:
                await notification_service.notify_assignees(
                    db, case, NotificationEvent.SLA_BREACHED, title=title, message=message,
                )
            else:
                await notification_service.notify_admins(
                    db, case, NotificationEvent.SLA_BREACHED, title=title, message=message,
                )

        if breached:
            logger.warning(f"SLA breached on {len(breached)} case(s)")
        return breached


# Singleton instance
sla_service = SLAService()
