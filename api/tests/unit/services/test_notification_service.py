"""
Unit tests for NotificationService.

Tests cover:
- Intents queued for new cases (assignees, teams, admins)
- Draining pending intents
- Marking intents processed
"""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    CaseCategory,
    CaseSeverity,
    Notification,
    NotificationAudience,
    NotificationEvent,
    NotificationStatus,
)
from app.services.case_lifecycle_service import case_lifecycle_service
from app.services.case_service import case_service
from app.services.notification_service import notification_service
from tests.fixtures.factories import BASE_TIME


async def _case(db: AsyncSession):
    return await case_service.create_case(
        db,
        title="Interconnect revenue drop",
        severity=CaseSeverity.HIGH,
        category=CaseCategory.REVENUE_LOSS,
        created_at=BASE_TIME,
    )


@pytest.mark.unit
class TestNotifyCaseCreated:
    """Tests for notify_case_created."""

    @pytest.mark.asyncio
    async def test_unassigned_case_notifies_admins(self, db_session: AsyncSession):
        case = await _case(db_session)

        created = await notification_service.notify_case_created(db_session, case)

        assert len(created) == 1
        assert created[0].audience == NotificationAudience.ADMINS
        assert created[0].event_type == NotificationEvent.UNASSIGNED_CASE_CREATED
        assert created[0].payload["case_number"] == case.case_number
        assert created[0].payload["severity"] == "HIGH"

    @pytest.mark.asyncio
    async def test_assigned_case_notifies_owners(self, db_session: AsyncSession, operator, noc_team):
        case = await _case(db_session)
        await case_lifecycle_service.assign(
            db_session, case, actor_id=None, user_id=operator.id, team_id=noc_team.id,
        )

        created = await notification_service.notify_case_created(db_session, case)

        assert [(n.audience, n.event_type) for n in created] == [
            (NotificationAudience.USER, NotificationEvent.CASE_ASSIGNED),
            (NotificationAudience.TEAM, NotificationEvent.TEAM_CASE_CREATED),
        ]
        assert created[0].recipient_user_id == operator.id
        assert created[1].recipient_team_id == noc_team.id
        assert created[1].payload["skip_user_ids"] == [operator.id]

    @pytest.mark.asyncio
    async def test_assignees_without_owner_is_empty(self, db_session: AsyncSession):
        case = await _case(db_session)

        created = await notification_service.notify_assignees(
            db_session, case, NotificationEvent.CASE_RESOLVED, title="t", message="m",
        )

        assert created == []


@pytest.mark.unit
class TestDrain:
    """Tests for get_pending and mark_processed."""

    @pytest.mark.asyncio
    async def test_pending_then_processed(self, db_session: AsyncSession):
        first = await _case(db_session)
        second = await _case(db_session)
        await notification_service.notify_case_created(db_session, first)
        await notification_service.notify_case_created(db_session, second)

        pending = await notification_service.get_pending(db_session)
        assert [n.case_id for n in pending] == [first.id, second.id]

        ids = [n.id for n in pending]
        assert await notification_service.mark_processed(db_session, ids[:1]) == 1
        assert await notification_service.mark_processed(db_session, ids[:1]) == 0
        assert await notification_service.mark_processed(
            db_session, ids[1:], status=NotificationStatus.FAILED,
        ) == 1

        result = await db_session.execute(
            select(Notification)
            .order_by(Notification.id)
            .execution_options(populate_existing=True)
        )
        rows = list(result.scalars().all())
        assert [n.status for n in rows] == [NotificationStatus.SENT, NotificationStatus.FAILED]
        assert all(n.processed_at is not None for n in rows)
        assert await notification_service.get_pending(db_session) == []

    @pytest.mark.asyncio
    async def test_mark_nothing(self, db_session: AsyncSession):
        assert await notification_service.mark_processed(db_session, []) == 0

    @pytest.mark.asyncio
    async def test_pending_limit(self, db_session: AsyncSession):
        for _ in range(3):
            await notification_service.notify_case_created(db_session, await _case(db_session))

        assert len(await notification_service.get_pending(db_session, limit=2)) == 2
