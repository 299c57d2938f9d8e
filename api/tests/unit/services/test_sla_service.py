"""
Unit tests for SLA breach detection and the scheduled sweep.
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import create_session_factory
from app.models import (
    ActivityType,
    CaseCategory,
    CaseSeverity,
    NotificationAudience,
    NotificationEvent,
    utcnow,
)
from app.services.case_lifecycle_service import case_lifecycle_service
from app.services.case_service import case_service
from app.services.notification_service import notification_service
from app.services.scheduler_service import SchedulerService
from app.services.sla_service import sla_service
from tests.fixtures.factories import BASE_TIME


async def _critical_case(db: AsyncSession, created_at=BASE_TIME):
    return await case_service.create_case(
        db,
        title="Signalling storm on MSC",
        severity=CaseSeverity.CRITICAL,
        category=CaseCategory.NETWORK_ISSUE,
        created_at=created_at,
    )


def _sla_notifications(notifications):
    return [n for n in notifications if n.event_type == NotificationEvent.SLA_BREACHED]


@pytest.mark.unit
class TestMarkBreaches:
    """Tests for SLAService.mark_breaches."""

    @pytest.mark.asyncio
    async def test_case_within_sla_is_untouched(self, db_session: AsyncSession):
        case = await _critical_case(db_session)

        assert await sla_service.mark_breaches(db_session, BASE_TIME + timedelta(hours=3)) == []
        assert case.sla_breached is False

    @pytest.mark.asyncio
    async def test_overdue_case_is_flagged_once(self, db_session: AsyncSession):
        case = await _critical_case(db_session)
        now = BASE_TIME + timedelta(hours=5)

        assert await sla_service.mark_breaches(db_session, now) == [case]
        assert await sla_service.mark_breaches(db_session, now + timedelta(hours=1)) == []

        assert case.sla_breached is True
        activities = await case_service.list_activities(db_session, case.id)
        breaches = [a for a in activities if a.activity_type == ActivityType.SLA_BREACHED]
        assert len(breaches) == 1
        assert breaches[0].description == "SLA deadline passed 60 min ago"

        notifications = _sla_notifications(await notification_service.get_pending(db_session))
        assert [n.audience for n in notifications] == [NotificationAudience.ADMINS]

    @pytest.mark.asyncio
    async def test_breach_notifies_assignees(self, db_session: AsyncSession, operator):
        case = await _critical_case(db_session)
        await case_lifecycle_service.assign(db_session, case, actor_id=None, user_id=operator.id)

        await sla_service.mark_breaches(db_session, BASE_TIME + timedelta(hours=5))

        notifications = _sla_notifications(await notification_service.get_pending(db_session))
        assert [(n.audience, n.recipient_user_id) for n in notifications] == [
            (NotificationAudience.USER, operator.id),
        ]

    @pytest.mark.asyncio
    async def test_resolved_case_is_not_flagged(self, db_session: AsyncSession):
        case = await _critical_case(db_session)
        await case_lifecycle_service.resolve(db_session, case, actor_id=None, resolution="fixed")
        await db_session.flush()

        assert await sla_service.mark_breaches(db_session, BASE_TIME + timedelta(hours=5)) == []


@pytest.mark.unit
class TestSchedulerSweep:
    """Tests for the scheduled SLA sweep."""

    @pytest.mark.asyncio
    async def test_sweep_commits_breaches(self, async_engine, db_session: AsyncSession):
        case = await _critical_case(db_session, created_at=utcnow() - timedelta(hours=10))
        await db_session.commit()

        scheduler = SchedulerService(session_factory=create_session_factory(async_engine))

        assert await scheduler.sweep_sla_breaches() == 1

        await db_session.refresh(case)
        assert case.sla_breached is True

    def test_scheduler_not_started_by_default(self):
        scheduler = SchedulerService()
        assert scheduler.scheduler is None
        scheduler.stop()
