"""Rule assignment store.

Maps Grafana alert rules to the users and teams that own the cases they open,
and picks the concrete assignees for a new case according to the rule's
assignment strategy.
"""

import logging
from itertools import zip_longest
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models import (
    AssignmentStrategy,
    RuleAssignment,
    RuleAssignmentTeam,
    RuleAssignmentUser,
    Team,
    User,
)
from app.schemas.rule_assignment import GrafanaRuleInfo, RuleAssignmentUpsert
from app.services.case_service import case_service

logger = logging.getLogger(__name__)

# (user_id, team_id) pairs; each pair is one assignment event
Assignee = tuple[int | None, int | None]


def _unique(ids: list[int]) -> list[int]:
    return list(dict.fromkeys(ids))


class RuleAssignmentService:
    """Service for rule assignment lookup and administration."""

    async def get_by_rule_uid(self, db: AsyncSession, rule_uid: str) -> RuleAssignment | None:
        result = await db.execute(
            select(RuleAssignment).where(RuleAssignment.grafana_rule_uid == rule_uid)
        )
        return result.scalar_one_or_none()

    async def get_required(self, db: AsyncSession, rule_uid: str) -> RuleAssignment:
        rule = await self.get_by_rule_uid(db, rule_uid)
        if rule is None:
            raise NotFoundError("Rule assignment", rule_uid)
        return rule

    async def list_rules(
        self,
        db: AsyncSession,
        search: str | None = None,
        active: bool | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[RuleAssignment], int]:
        """
        List rule assignments with filtering and pagination.

        Returns:
            Tuple of (rules for the page, total matching count)
        """
        conditions = []
        if active is not None:
            conditions.append(RuleAssignment.active.is_(active))
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    RuleAssignment.grafana_rule_uid.ilike(pattern),
                    RuleAssignment.grafana_rule_name.ilike(pattern),
                    RuleAssignment.grafana_folder_name.ilike(pattern),
                )
            )

        count_result = await db.execute(select(func.count(RuleAssignment.id)).where(*conditions))
        total = count_result.scalar_one()

        result = await db.execute(
            select(RuleAssignment)
            .where(*conditions)
            .order_by(RuleAssignment.grafana_rule_name, RuleAssignment.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def list_for_user(self, db: AsyncSession, user_id: int) -> list[RuleAssignment]:
        """Rules that link the user directly or through one of the teams they lead."""
        led_teams = select(Team.id).where(Team.lead_user_id == user_id)
        result = await db.execute(
            select(RuleAssignment)
            .where(
                or_(
                    RuleAssignment.id.in_(
                        select(RuleAssignmentUser.rule_assignment_id)
                        .where(RuleAssignmentUser.user_id == user_id)
                    ),
                    RuleAssignment.id.in_(
                        select(RuleAssignmentTeam.rule_assignment_id)
                        .where(RuleAssignmentTeam.team_id.in_(led_teams))
                    ),
                )
            )
            .order_by(RuleAssignment.grafana_rule_name, RuleAssignment.id)
        )
        return list(result.scalars().all())

    async def upsert(
        self,
        db: AsyncSession,
        rule_uid: str,
        data: RuleAssignmentUpsert,
        actor_id: int | None,
    ) -> RuleAssignment:
        """
        Create or update the assignment for a rule.

        ``user_ids``/``team_ids`` replace the linked parties when given and
        leave them alone when omitted.

        Raises:
            NotFoundError: If a referenced user or team does not exist
        """
        fields = data.model_dump(exclude={"user_ids", "team_ids"})
        if data.user_ids is not None:
            await self._ensure_users(db, data.user_ids)
        if data.team_ids is not None:
            await self._ensure_teams(db, data.team_ids)

        try:
            rule = await self.get_by_rule_uid(db, rule_uid)
            if rule is None:
                rule = RuleAssignment(
                    grafana_rule_uid=rule_uid,
                    created_by=actor_id,
                    rotation_cursor=0,
                    user_links=[],
                    team_links=[],
                    **fields,
                )
                db.add(rule)
                action = "Created"
            else:
                for key, value in fields.items():
                    setattr(rule, key, value)
                action = "Updated"

            rule.updated_by = actor_id
            if data.user_ids is not None:
                self._replace_users(rule, data.user_ids)
            if data.team_ids is not None:
                self._replace_teams(rule, data.team_ids)

            await db.flush()
            logger.info(f"{action} rule assignment for {rule_uid}")
            return rule

        except Exception as e:
            logger.error(f"Failed to save rule assignment {rule_uid}: {e}")
            raise

    async def add_members(
        self,
        db: AsyncSession,
        rule_uid: str,
        user_ids: list[int],
        team_ids: list[int],
        actor_id: int | None,
    ) -> RuleAssignment:
        """Link additional users and teams to a rule; already linked ones are kept as is."""
        rule = await self.get_required(db, rule_uid)
        await self._ensure_users(db, user_ids)
        await self._ensure_teams(db, team_ids)

        self._replace_users(rule, rule.assigned_user_ids + user_ids)
        self._replace_teams(rule, rule.assigned_team_ids + team_ids)
        rule.updated_by = actor_id

        await db.flush()
        logger.info(f"Linked users {user_ids} and teams {team_ids} to rule {rule_uid}")
        return rule

    async def remove_members(
        self,
        db: AsyncSession,
        rule_uid: str,
        user_ids: list[int],
        team_ids: list[int],
        actor_id: int | None,
    ) -> RuleAssignment:
        """Unlink users and teams from a rule."""
        rule = await self.get_required(db, rule_uid)

        self._replace_users(rule, [uid for uid in rule.assigned_user_ids if uid not in user_ids])
        self._replace_teams(rule, [tid for tid in rule.assigned_team_ids if tid not in team_ids])
        rule.updated_by = actor_id

        await db.flush()
        logger.info(f"Unlinked users {user_ids} and teams {team_ids} from rule {rule_uid}")
        return rule

    async def sync_from_grafana(
        self,
        db: AsyncSession,
        rules: list[GrafanaRuleInfo],
        actor_id: int | None,
    ) -> dict[str, int]:
        """
        Create an unassigned entry for every Grafana rule not known yet.

        Existing entries are left untouched so administrator changes survive.

        Returns:
            Dict with created, skipped and total counts
        """
        existing_result = await db.execute(select(RuleAssignment.grafana_rule_uid))
        existing = set(existing_result.scalars().all())

        created = 0
        skipped = 0
        for info in rules:
            if info.uid in existing:
                skipped += 1
                continue
            db.add(RuleAssignment(
                grafana_rule_uid=info.uid,
                grafana_rule_name=info.title,
                grafana_folder_uid=info.folder_uid,
                grafana_folder_name=info.folder_title,
                datasource_uid=info.datasource_uid,
                active=True,
                auto_assign_enabled=True,
                assignment_strategy=AssignmentStrategy.MANUAL,
                rotation_cursor=0,
                created_by=actor_id,
                updated_by=actor_id,
                user_links=[],
                team_links=[],
            ))
            existing.add(info.uid)
            created += 1

        await db.flush()
        logger.info(f"Grafana rule sync: {created} created, {skipped} skipped")
        return {"created": created, "skipped": skipped, "total": len(rules)}

    async def get_statistics(self, db: AsyncSession) -> dict[str, Any]:
        total = (await db.execute(select(func.count(RuleAssignment.id)))).scalar_one()
        active = (await db.execute(
            select(func.count(RuleAssignment.id)).where(RuleAssignment.active.is_(True))
        )).scalar_one()
        with_assignments = (await db.execute(
            select(func.count(RuleAssignment.id)).where(
                or_(RuleAssignment.user_links.any(), RuleAssignment.team_links.any())
            )
        )).scalar_one()

        return {
            "total_rules": total,
            "active_rules": active,
            "inactive_rules": total - active,
            "rules_with_assignments": with_assignments,
            "rules_without_assignments": total - with_assignments,
        }

    # =========================================================================
    # Assignee selection
    # =========================================================================

    async def resolve_assignees(self, db: AsyncSession, rule: RuleAssignment) -> list[Assignee]:
        """
        Pick who gets a new case opened by ``rule``.

        Inactive users and teams are skipped. Users and teams are paired by
        position, so ``[7, 8]`` users and ``[3]`` teams give ``(7, 3), (8, None)``.

        Args:
            db: Database session
            rule: Rule assignment matched for the alert

        Returns:
            Assignment events to apply, empty when the case stays unassigned
        """
        if not rule.auto_assign_enabled:
            return []

        users = await self._active_users(db, rule.assigned_user_ids)
        teams = await self._active_teams(db, rule.assigned_team_ids)
        strategy = rule.assignment_strategy

        if strategy == AssignmentStrategy.LOAD_BASED and users:
            loads = [await case_service.count_open_cases_for_user(db, uid) for uid in users]
            users = [users[loads.index(min(loads))]]
        elif strategy == AssignmentStrategy.ROUND_ROBIN and users:
            index = (rule.rotation_cursor or 0) % len(users)
            users = [users[index]]
            rule.rotation_cursor = index + 1
        elif strategy == AssignmentStrategy.TEAM_BASED:
            users = []
            if teams:
                team = await db.get(Team, teams[0])
                if team is not None and team.lead_user_id is not None:
                    users = await self._active_users(db, [team.lead_user_id])

        return list(zip_longest(users, teams))

    async def _active_users(self, db: AsyncSession, user_ids: list[int]) -> list[int]:
        if not user_ids:
            return []
        result = await db.execute(
            select(User.id).where(User.id.in_(user_ids), User.is_active.is_(True))
        )
        active = set(result.scalars().all())
        return [uid for uid in user_ids if uid in active]

    async def _active_teams(self, db: AsyncSession, team_ids: list[int]) -> list[int]:
        if not team_ids:
            return []
        result = await db.execute(
            select(Team.id).where(Team.id.in_(team_ids), Team.is_active.is_(True))
        )
        active = set(result.scalars().all())
        return [tid for tid in team_ids if tid in active]

    async def _ensure_users(self, db: AsyncSession, user_ids: list[int]) -> None:
        for user_id in _unique(user_ids):
            await case_service.ensure_user(db, user_id)

    async def _ensure_teams(self, db: AsyncSession, team_ids: list[int]) -> None:
        for team_id in _unique(team_ids):
            await case_service.ensure_team(db, team_id)

    @staticmethod
    def _replace_users(rule: RuleAssignment, user_ids: list[int]) -> None:
        current = {link.user_id: link for link in rule.user_links}
        links = []
        for position, user_id in enumerate(_unique(user_ids)):
            link = current.get(user_id) or RuleAssignmentUser(user_id=user_id)
            link.position = position
            links.append(link)
        rule.user_links[:] = links

    @staticmethod
    def _replace_teams(rule: RuleAssignment, team_ids: list[int]) -> None:
        current = {link.team_id: link for link in rule.team_links}
        links = []
        for position, team_id in enumerate(_unique(team_ids)):
            link = current.get(team_id) or RuleAssignmentTeam(team_id=team_id)
            link.position = position
            links.append(link)
        rule.team_links[:] = links


# Singleton instance
rule_assignment_service = RuleAssignmentService()
