"""
Unit tests for CaseService.

Tests cover:
- Case numbering per year
- Case creation (status, SLA deadline, CREATED activity)
- Case retrieval by id and by case number
- Case listing with filters
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models import ActivityType, CaseCategory, CaseSeverity, CaseStatus
from app.services.case_lifecycle_service import case_lifecycle_service
from app.services.case_service import CaseService, case_service
from tests.fixtures.factories import BASE_TIME


async def _create(db: AsyncSession, title: str = "Packet loss on core router", **kwargs):
    kwargs.setdefault("severity", CaseSeverity.HIGH)
    kwargs.setdefault("category", CaseCategory.NETWORK_ISSUE)
    kwargs.setdefault("created_at", BASE_TIME)
    return await case_service.create_case(db, title=title, **kwargs)


@pytest.mark.unit
class TestCaseServiceInit:
    """Tests for CaseService initialization."""

    def test_case_service_singleton_exists(self):
        assert case_service is not None
        assert isinstance(case_service, CaseService)


@pytest.mark.unit
class TestGenerateCaseNumber:
    """Tests for case numbering."""

    @pytest.mark.asyncio
    async def test_numbers_increase_within_a_year(self, db_session: AsyncSession):
        first = await case_service.generate_case_number(db_session, 2026)
        second = await case_service.generate_case_number(db_session, 2026)

        assert first == "CASE-2026-00001"
        assert second == "CASE-2026-00002"

    @pytest.mark.asyncio
    async def test_each_year_has_its_own_sequence(self, db_session: AsyncSession):
        await case_service.generate_case_number(db_session, 2026)
        await case_service.generate_case_number(db_session, 2026)

        assert await case_service.generate_case_number(db_session, 2027) == "CASE-2027-00001"


@pytest.mark.unit
class TestCreateCase:
    """Tests for case creation."""

    @pytest.mark.asyncio
    async def test_create_case_defaults(self, db_session: AsyncSession):
        case = await _create(db_session, severity=CaseSeverity.CRITICAL)

        assert case.id is not None
        assert case.case_number == "CASE-2026-00001"
        assert case.status == CaseStatus.OPEN
        assert case.priority == 1
        assert case.alert_count == 1
        assert case.assigned_user_ids == []
        assert case.assigned_team_ids == []
        assert case.sla_deadline == BASE_TIME + timedelta(hours=4)

    @pytest.mark.asyncio
    async def test_create_case_writes_created_activity(self, db_session: AsyncSession):
        case = await _create(db_session)

        activities = await case_service.list_activities(db_session, case.id)

        assert [a.activity_type for a in activities] == [ActivityType.CREATED]
        assert activities[0].details == {"source": "manual"}

    @pytest.mark.asyncio
    async def test_alert_case_records_source(self, db_session: AsyncSession):
        case = await _create(db_session, grafana_alert_uid="fp1", open_fingerprint="fp1")

        activities = await case_service.list_activities(db_session, case.id)

        assert activities[0].details == {"source": "grafana"}
        assert case.last_alert_at == BASE_TIME

    @pytest.mark.parametrize(
        "severity,hours",
        [
            (CaseSeverity.CRITICAL, 4),
            (CaseSeverity.HIGH, 8),
            (CaseSeverity.MEDIUM, 24),
            (CaseSeverity.LOW, 72),
        ],
    )
    def test_sla_deadline_by_severity(self, severity, hours):
        assert case_service.calculate_sla_deadline(severity, BASE_TIME) == BASE_TIME + timedelta(hours=hours)


@pytest.mark.unit
class TestGetCase:
    """Tests for case retrieval."""

    @pytest.mark.asyncio
    async def test_get_by_numeric_reference(self, db_session: AsyncSession):
        case = await _create(db_session)
        assert await case_service.get_case_by_reference(db_session, str(case.id)) is case

    @pytest.mark.asyncio
    async def test_get_by_case_number_ignores_case(self, db_session: AsyncSession):
        case = await _create(db_session)
        found = await case_service.get_case_by_reference(db_session, case.case_number.lower())
        assert found.id == case.id

    @pytest.mark.asyncio
    async def test_unknown_case_raises(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError, match="Case not found"):
            await case_service.get_case_by_reference(db_session, "CASE-2026-99999")

        with pytest.raises(NotFoundError):
            await case_service.get_case(db_session, 404)


@pytest.mark.unit
class TestListCases:
    """Tests for case listing."""

    @pytest.mark.asyncio
    async def test_filters(self, db_session: AsyncSession, operator):
        critical = await _create(db_session, "Billing outage", severity=CaseSeverity.CRITICAL)
        low = await _create(db_session, "Disk at 80%", severity=CaseSeverity.LOW)
        await case_lifecycle_service.assign(db_session, low, actor_id=None, user_id=operator.id)

        cases, total = await case_service.list_cases(db_session, severity=CaseSeverity.CRITICAL)
        assert total == 1
        assert cases[0].id == critical.id

        cases, total = await case_service.list_cases(db_session, assigned_user_id=operator.id)
        assert [c.id for c in cases] == [low.id]

        cases, total = await case_service.list_cases(db_session, unassigned=True)
        assert [c.id for c in cases] == [critical.id]

        cases, total = await case_service.list_cases(db_session, search="outage")
        assert [c.id for c in cases] == [critical.id]

    @pytest.mark.asyncio
    async def test_pagination(self, db_session: AsyncSession):
        for index in range(5):
            await _create(db_session, f"Case number {index}")

        cases, total = await case_service.list_cases(db_session, page=2, page_size=2)

        assert total == 5
        assert len(cases) == 2

    @pytest.mark.asyncio
    async def test_open_case_counts(self, db_session: AsyncSession, operator, noc_team):
        first = await _create(db_session)
        second = await _create(db_session)
        await case_lifecycle_service.assign(db_session, first, actor_id=None, user_id=operator.id, team_id=noc_team.id)
        await case_lifecycle_service.assign(db_session, second, actor_id=None, user_id=operator.id)
        await case_lifecycle_service.cancel(db_session, second, actor_id=None)
        await db_session.flush()

        assert await case_service.count_open_cases_for_user(db_session, operator.id) == 1
        assert await case_service.count_open_cases_for_team(db_session, noc_team.id) == 1
