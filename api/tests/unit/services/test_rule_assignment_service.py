"""
Unit tests for the rule assignment store.

Tests cover:
- Assignee selection per strategy
- Create/update of rule assignments
- Linking and unlinking users and teams
- Grafana rule sync and statistics
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models import AssignmentStrategy, CaseCategory, CaseSeverity
from app.schemas.rule_assignment import GrafanaRuleInfo, RuleAssignmentUpsert
from app.services.case_lifecycle_service import case_lifecycle_service
from app.services.case_service import case_service
from app.services.rule_assignment_service import rule_assignment_service
from tests.fixtures.factories import BASE_TIME, create_rule_assignment, create_team, create_user


@pytest.mark.unit
class TestResolveAssignees:
    """Tests for picking assignees from a rule."""

    @pytest.mark.asyncio
    async def test_manual_pairs_users_and_teams(self, db_session: AsyncSession, operator, second_operator, noc_team):
        rule = await create_rule_assignment(db_session, user_ids=[7, 8], team_ids=[3])

        assert await rule_assignment_service.resolve_assignees(db_session, rule) == [(7, 3), (8, None)]

    @pytest.mark.asyncio
    async def test_auto_assign_disabled(self, db_session: AsyncSession, operator):
        rule = await create_rule_assignment(db_session, user_ids=[7], auto_assign_enabled=False)

        assert await rule_assignment_service.resolve_assignees(db_session, rule) == []

    @pytest.mark.asyncio
    async def test_inactive_parties_are_skipped(self, db_session: AsyncSession, operator):
        await create_user(db_session, user_id=9, username="on.leave", is_active=False)
        await create_team(db_session, team_id=4, name="Disbanded", is_active=False)
        rule = await create_rule_assignment(db_session, user_ids=[9, 7], team_ids=[4])

        assert await rule_assignment_service.resolve_assignees(db_session, rule) == [(7, None)]

    @pytest.mark.asyncio
    async def test_no_members(self, db_session: AsyncSession):
        rule = await create_rule_assignment(db_session)

        assert await rule_assignment_service.resolve_assignees(db_session, rule) == []

    @pytest.mark.asyncio
    async def test_round_robin_rotates(self, db_session: AsyncSession, operator, second_operator):
        rule = await create_rule_assignment(
            db_session, user_ids=[7, 8], strategy=AssignmentStrategy.ROUND_ROBIN,
        )

        picks = [await rule_assignment_service.resolve_assignees(db_session, rule) for _ in range(3)]

        assert picks == [[(7, None)], [(8, None)], [(7, None)]]

    @pytest.mark.asyncio
    async def test_load_based_picks_least_busy(self, db_session: AsyncSession, operator, second_operator):
        busy = await case_service.create_case(
            db_session,
            title="Existing outage",
            severity=CaseSeverity.HIGH,
            category=CaseCategory.NETWORK_ISSUE,
            created_at=BASE_TIME,
        )
        await case_lifecycle_service.assign(db_session, busy, actor_id=None, user_id=operator.id)
        rule = await create_rule_assignment(
            db_session, user_ids=[7, 8], strategy=AssignmentStrategy.LOAD_BASED,
        )

        assert await rule_assignment_service.resolve_assignees(db_session, rule) == [(8, None)]

    @pytest.mark.asyncio
    async def test_team_based_uses_team_lead(self, db_session: AsyncSession, operator, noc_team):
        rule = await create_rule_assignment(
            db_session, user_ids=[7], team_ids=[3], strategy=AssignmentStrategy.TEAM_BASED,
        )

        assert await rule_assignment_service.resolve_assignees(db_session, rule) == [(8, 3)]


@pytest.mark.unit
class TestUpsert:
    """Tests for creating and updating rule assignments."""

    @pytest.mark.asyncio
    async def test_create(self, db_session: AsyncSession, admin_user, operator, noc_team):
        data = RuleAssignmentUpsert(
            grafana_rule_name="Packet loss",
            severity=CaseSeverity.HIGH,
            user_ids=[7],
            team_ids=[3],
        )

        rule = await rule_assignment_service.upsert(db_session, "rule-pl", data, admin_user.id)

        assert rule.id is not None
        assert rule.grafana_rule_uid == "rule-pl"
        assert rule.assigned_user_ids == [7]
        assert rule.assigned_team_ids == [3]
        assert rule.created_by == admin_user.id
        assert await rule_assignment_service.get_by_rule_uid(db_session, "rule-pl") is rule

    @pytest.mark.asyncio
    async def test_update_keeps_members_when_omitted(self, db_session: AsyncSession, operator):
        await create_rule_assignment(db_session, rule_uid="rule-42", user_ids=[7])

        rule = await rule_assignment_service.upsert(
            db_session,
            "rule-42",
            RuleAssignmentUpsert(grafana_rule_name="Renamed", active=False),
            None,
        )

        assert rule.grafana_rule_name == "Renamed"
        assert rule.active is False
        assert rule.assigned_user_ids == [7]

    @pytest.mark.asyncio
    async def test_unknown_member_rejected(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError, match="User not found: 99"):
            await rule_assignment_service.upsert(
                db_session, "rule-x", RuleAssignmentUpsert(grafana_rule_name="X", user_ids=[99]), None,
            )

    @pytest.mark.asyncio
    async def test_get_required_unknown(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError, match="Rule assignment not found"):
            await rule_assignment_service.get_required(db_session, "missing")


@pytest.mark.unit
class TestMembers:
    """Tests for linking and unlinking members."""

    @pytest.mark.asyncio
    async def test_add_and_remove(self, db_session: AsyncSession, operator, second_operator, noc_team):
        await create_rule_assignment(db_session, user_ids=[7])

        rule = await rule_assignment_service.add_members(db_session, "rule-42", [8, 7], [3], None)
        assert rule.assigned_user_ids == [7, 8]
        assert rule.assigned_team_ids == [3]

        rule = await rule_assignment_service.remove_members(db_session, "rule-42", [7], [], None)
        assert rule.assigned_user_ids == [8]
        assert rule.assigned_team_ids == [3]

    @pytest.mark.asyncio
    async def test_list_for_user_includes_led_teams(self, db_session: AsyncSession, operator, noc_team):
        direct = await create_rule_assignment(db_session, rule_uid="r-direct", name="A", user_ids=[7])
        via_team = await create_rule_assignment(db_session, rule_uid="r-team", name="B", team_ids=[3])

        assert await rule_assignment_service.list_for_user(db_session, 7) == [direct]
        assert await rule_assignment_service.list_for_user(db_session, 8) == [via_team]


@pytest.mark.unit
class TestSyncAndStatistics:
    """Tests for Grafana sync and statistics."""

    @pytest.mark.asyncio
    async def test_sync_creates_only_unknown_rules(self, db_session: AsyncSession, operator):
        await create_rule_assignment(db_session, rule_uid="rule-42", user_ids=[7])
        rules = [
            GrafanaRuleInfo(uid="rule-42", title="Changed upstream"),
            GrafanaRuleInfo(uid="rule-43", title="Disk usage", folderUID="f1", folderTitle="Storage"),
        ]

        result = await rule_assignment_service.sync_from_grafana(db_session, rules, None)

        assert result == {"created": 1, "skipped": 1, "total": 2}
        kept = await rule_assignment_service.get_by_rule_uid(db_session, "rule-42")
        assert kept.grafana_rule_name == "High error rate"
        created = await rule_assignment_service.get_by_rule_uid(db_session, "rule-43")
        assert created.grafana_folder_name == "Storage"
        assert created.has_assignments is False

    @pytest.mark.asyncio
    async def test_statistics(self, db_session: AsyncSession, operator):
        await create_rule_assignment(db_session, rule_uid="r1", user_ids=[7])
        await create_rule_assignment(db_session, rule_uid="r2", active=False)
        await create_rule_assignment(db_session, rule_uid="r3")

        stats = await rule_assignment_service.get_statistics(db_session)

        assert stats == {
            "total_rules": 3,
            "active_rules": 2,
            "inactive_rules": 1,
            "rules_with_assignments": 1,
            "rules_without_assignments": 2,
        }

    @pytest.mark.asyncio
    async def test_list_rules_filters(self, db_session: AsyncSession):
        await create_rule_assignment(db_session, rule_uid="r1", name="Packet loss")
        await create_rule_assignment(db_session, rule_uid="r2", name="Disk usage", active=False)

        rules, total = await rule_assignment_service.list_rules(db_session, search="packet")
        assert total == 1
        assert rules[0].grafana_rule_uid == "r1"

        rules, total = await rule_assignment_service.list_rules(db_session, active=False)
        assert [r.grafana_rule_uid for r in rules] == ["r2"]
