"""Grafana webhook ingestion pipeline.

Each delivery is parsed once; every alert in it is then handled inside its own
savepoint so that one bad alert cannot undo the others. Firing alerts are
deduplicated, matched to their rule assignment and turned into cases; resolved
alerts resolve the case currently holding their fingerprint.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.exceptions import AlertParseError
from app.models import (
    AssignmentReason,
    Case,
    CaseCategory,
    CaseSeverity,
    NotificationEvent,
    RuleAssignment,
    utcnow,
)
from app.schemas.webhook import GrafanaWebhookPayload
from app.services import alert_parser
from app.services.alert_parser import ParsedAlert
from app.services.case_lifecycle_service import case_lifecycle_service
from app.services.case_service import case_service
from app.services.dedup_service import CaseDeduplicationEngine, dedup_engine
from app.services.notification_service import notification_service
from app.services.rule_assignment_service import rule_assignment_service
from app.utils.metrics import (
    ALERT_FAILURES,
    ALERTS_DEDUPLICATED,
    CASES_CREATED,
    CASES_RESOLVED_BY_WEBHOOK,
    WEBHOOK_ALERTS,
)

logger = logging.getLogger(__name__)

RESOLVED_BY_GRAFANA = "Alert resolved in Grafana"

AlertHandler = Callable[[AsyncSession, Any, GrafanaWebhookPayload, datetime], Awaitable[Case | None]]


class WebhookIngestionPipeline:
    """Turns Grafana webhook deliveries into case changes."""

    def __init__(self, dedup: CaseDeduplicationEngine | None = None):
        self.dedup = dedup or dedup_engine

    async def process_alert_payload(
        self,
        db: AsyncSession,
        body: bytes | str,
        received_at: datetime | None = None,
    ) -> list[Case]:
        """
        Process a delivery on the alert endpoint.

        Args:
            db: Database session
            body: Raw request body
            received_at: Delivery time (defaults to now); the dedup reference for
                alerts without a ``startsAt``

        Returns:
            Cases created, re-fired or resolved by the delivery, in alert order

        Raises:
            WebhookProcessingException: If the body is not a usable envelope
        """
        envelope = alert_parser.parse_envelope(body)
        logger.info(
            f"Received Grafana webhook: receiver={envelope.receiver}, "
            f"status={envelope.status}, alerts={len(envelope.alerts)}"
        )
        return await self._process_each(db, envelope, self._handle_alert, received_at or utcnow())

    async def process_resolved_payload(
        self,
        db: AsyncSession,
        body: bytes | str,
        received_at: datetime | None = None,
    ) -> list[Case]:
        """
        Process a delivery on the resolved endpoint.

        Only resolved alerts are considered; an alert counts as resolved when it
        says so itself or when it has no status and the envelope is resolved.

        Returns:
            Cases resolved by the delivery
        """
        envelope = alert_parser.parse_envelope(body)
        logger.info(f"Received Grafana resolution webhook with {len(envelope.alerts)} alert(s)")
        return await self._process_each(db, envelope, self._handle_resolution, received_at or utcnow())

    def validate_payload(self, body: bytes | str) -> dict[str, Any]:
        """
        Check a delivery without touching any case.

        Returns:
            Dict with alert counts and the parse error of each rejected alert
        """
        envelope = alert_parser.parse_envelope(body)
        received_at = utcnow()
        errors: list[str] = []
        firing = 0
        resolved = 0
        for index, raw in enumerate(envelope.alerts):
            try:
                alert = alert_parser.parse_alert(raw, received_at)
            except AlertParseError as e:
                errors.append(f"alert {index}: {e}")
                continue
            if alert.is_resolved:
                resolved += 1
            else:
                firing += 1

        return {
            "alert_count": len(envelope.alerts),
            "firing": firing,
            "resolved": resolved,
            "invalid": len(errors),
            "errors": errors,
        }

    async def _process_each(
        self,
        db: AsyncSession,
        envelope: GrafanaWebhookPayload,
        handler: AlertHandler,
        received_at: datetime,
    ) -> list[Case]:
        case_ids: list[int] = []
        failures = 0

        for index, raw in enumerate(envelope.alerts):
            try:
                async with db.begin_nested():
                    case = await handler(db, raw, envelope, received_at)
                    case_id = case.id if case is not None else None
            except Exception as e:
                failures += 1
                ALERT_FAILURES.inc()
                logger.error(f"Failed to process alert {index} of webhook delivery: {e}", exc_info=True)
                continue

            if case_id is not None and case_id not in case_ids:
                case_ids.append(case_id)

        if failures:
            logger.warning(f"{failures} of {len(envelope.alerts)} alert(s) could not be processed")

        # Savepoint rollbacks expire loaded state; read the results back fresh
        return await case_service.reload_cases(db, case_ids)

    # =========================================================================
    # Firing alerts
    # =========================================================================

    async def _handle_alert(
        self,
        db: AsyncSession,
        raw: Any,
        envelope: GrafanaWebhookPayload,
        received_at: datetime,
    ) -> Case | None:
        alert = alert_parser.parse_alert(raw, received_at)
        WEBHOOK_ALERTS.labels(status=alert.status).inc()

        if alert.is_resolved:
            return await self._resolve(db, alert, received_at)

        rule = None
        if alert.rule_uid:
            rule = await rule_assignment_service.get_by_rule_uid(db, alert.rule_uid)
            if rule is None:
                logger.info(f"No rule assignment for rule {alert.rule_uid}, case will be unassigned")
            elif not rule.active:
                logger.info(f"Rule assignment {alert.rule_uid} is inactive, skipping alert {alert.fingerprint}")
                return None

        existing = await self.dedup.find_existing_case(
            db, alert.fingerprint, self.dedup.reference_time(alert, received_at),
        )
        if existing is not None:
            ALERTS_DEDUPLICATED.inc()
            return await self.dedup.record_refire(db, existing, alert, received_at)

        return await self._open_case(db, alert, rule, envelope, received_at)

    async def _open_case(
        self,
        db: AsyncSession,
        alert: ParsedAlert,
        rule: RuleAssignment | None,
        envelope: GrafanaWebhookPayload,
        received_at: datetime,
    ) -> Case:
        """Create the case for a new firing, or join the one a concurrent delivery just created."""
        severity = (rule.severity if rule else None) or alert.severity or CaseSeverity.MEDIUM
        category = (rule.category if rule else None) or alert.category or CaseCategory.CUSTOM

        previous = await self.dedup.release_stale(db, alert.fingerprint)

        try:
            async with db.begin_nested():
                case = await case_service.create_case(
                    db,
                    title=alert_parser.build_title(alert, rule.grafana_rule_name if rule else None),
                    description=alert_parser.build_description(alert, rule),
                    severity=severity,
                    category=category,
                    created_at=received_at,
                    grafana_alert_uid=alert.fingerprint,
                    grafana_alert_id=alert.alert_id,
                    grafana_rule_uid=alert.rule_uid,
                    open_fingerprint=alert.fingerprint,
                    affected_services=alert_parser.affected_services(alert),
                    tags=alert_parser.build_tags(alert, severity, category),
                    alert_data=alert_parser.alert_snapshot(alert, received_at, envelope.receiver),
                )
        except IntegrityError:
            winner = await self.dedup.find_open_by_fingerprint(db, alert.fingerprint)
            if winner is None:
                raise
            logger.info(f"Concurrent delivery already opened {winner.case_number} for {alert.fingerprint}")
            ALERTS_DEDUPLICATED.inc()
            return await self.dedup.record_refire(db, winner, alert, received_at)

        CASES_CREATED.labels(severity=severity.value).inc()

        if rule is not None:
            assignees = await rule_assignment_service.resolve_assignees(db, rule)
            for user_id, team_id in assignees:
                await case_lifecycle_service.assign(
                    db,
                    case,
                    actor_id=None,
                    user_id=user_id,
                    team_id=team_id,
                    reason=AssignmentReason.INITIAL,
                    notes=f"Assigned by rule {rule.grafana_rule_uid} ({rule.assignment_strategy.value})",
                    replace=False,
                    at=received_at,
                )

        await notification_service.notify_case_created(db, case)

        if previous is not None and previous.is_active:
            await self._supersede(db, previous, case, received_at)

        logger.info(
            f"Opened case {case.case_number} for alert {alert.fingerprint} "
            f"(status={case.status.value}, users={case.assigned_user_ids}, teams={case.assigned_team_ids})"
        )
        return case

    async def _supersede(self, db: AsyncSession, previous: Case, replacement: Case, at: datetime) -> None:
        """
        Resolve a live case whose alert has started a new occurrence.

        A new ``startsAt`` means Grafana considered the earlier occurrence over,
        even if its resolution never reached us. The old case would otherwise
        stay active with no fingerprint to resolve it by.
        """
        await case_lifecycle_service.resolve(
            db,
            previous,
            actor_id=None,
            resolution=f"Superseded by {replacement.case_number}: alert fired again as a new occurrence",
            at=at,
        )
        await notification_service.notify_assignees(
            db,
            previous,
            NotificationEvent.CASE_RESOLVED,
            title=f"Case Resolved: {previous.case_number}",
            message=f"{previous.case_number} was superseded by {replacement.case_number}",
        )
        logger.warning(f"Case {previous.case_number} superseded by {replacement.case_number}")

    # =========================================================================
    # Resolved alerts
    # =========================================================================

    async def _handle_resolution(
        self,
        db: AsyncSession,
        raw: Any,
        envelope: GrafanaWebhookPayload,
        received_at: datetime,
    ) -> Case | None:
        alert = alert_parser.parse_alert(raw, received_at)
        envelope_resolved = (envelope.status or "").lower() == "resolved"
        has_own_status = isinstance(raw, dict) and any(str(key).lower() == "status" for key in raw)

        if not (alert.is_resolved or (envelope_resolved and not has_own_status)):
            logger.debug(f"Skipping {alert.status} alert {alert.fingerprint} on resolution endpoint")
            return None

        WEBHOOK_ALERTS.labels(status="resolved").inc()
        return await self._resolve(db, alert, received_at)

    async def _resolve(self, db: AsyncSession, alert: ParsedAlert, received_at: datetime) -> Case | None:
        case = await self.dedup.find_open_by_fingerprint(db, alert.fingerprint)
        if case is None or not case.is_active:
            logger.info(f"No open case for resolved alert {alert.fingerprint}, ignoring")
            return None

        await case_lifecycle_service.resolve(
            db,
            case,
            actor_id=None,
            resolution=RESOLVED_BY_GRAFANA,
            at=received_at,
        )
        await notification_service.notify_assignees(
            db,
            case,
            NotificationEvent.CASE_RESOLVED,
            title=f"Case Resolved: {case.case_number}",
            message=f"{case.case_number} was resolved because its Grafana alert cleared",
        )
        CASES_RESOLVED_BY_WEBHOOK.inc()

        if get_settings().auto_close_resolved:
            await case_lifecycle_service.close(
                db,
                case,
                actor_id=None,
                reason="Closed automatically after Grafana resolution",
                at=received_at,
            )

        logger.info(f"Resolved case {case.case_number} from Grafana alert {alert.fingerprint}")
        return case


# Singleton instance
webhook_pipeline = WebhookIngestionPipeline()
