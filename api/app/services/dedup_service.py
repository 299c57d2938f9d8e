"""Alert deduplication.

A fingerprint maps to at most one live case at a time, enforced by the unique
``cases.open_fingerprint`` column rather than by in-process locking. Firings
whose occurrence started inside the dedup window of that case are folded into it.
Grafana repeats a still-firing alert with its original ``startsAt``, so repeats
of one occurrence always land on the case it opened.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models import TERMINAL_STATUSES, ActivityType, Case
from app.services.alert_parser import ParsedAlert
from app.services.case_service import case_service

logger = logging.getLogger(__name__)


class CaseDeduplicationEngine:
    """Decides whether an alert opens a new case or re-fires an existing one."""

    def __init__(self, window: timedelta | None = None):
        self._window = window

    @property
    def window(self) -> timedelta:
        if self._window is not None:
            return self._window
        return timedelta(minutes=get_settings().alert_dedup_window_minutes)

    async def find_existing_case(
        self,
        db: AsyncSession,
        fingerprint: str,
        reference_time: datetime,
    ) -> Case | None:
        """
        Find the case a new firing of ``fingerprint`` should fold into.

        The most recently created case for the fingerprint qualifies when it
        is not closed or cancelled and was created no earlier than
        ``reference_time - window``.

        Args:
            db: Database session
            fingerprint: Alert fingerprint
            reference_time: When the alert occurrence started firing
                (its ``startsAt``), or the delivery time when it has none

        Returns:
            The case to fold into, or None if a new case is needed
        """
        await db.flush()
        result = await db.execute(
            select(Case)
            .where(Case.grafana_alert_uid == fingerprint)
            .order_by(Case.created_at.desc(), Case.id.desc())
            .limit(1)
        )
        latest = result.scalar_one_or_none()
        if latest is None:
            return None

        if latest.status in TERMINAL_STATUSES:
            logger.debug(f"Latest case {latest.case_number} for {fingerprint} is {latest.status.value}")
            return None

        if latest.created_at < reference_time - self.window:
            logger.debug(f"Latest case {latest.case_number} for {fingerprint} is outside the dedup window")
            return None

        return latest

    @staticmethod
    def reference_time(alert: ParsedAlert, received_at: datetime) -> datetime:
        """Time a firing is measured against the window: its start, else its delivery."""
        return alert.starts_at or received_at

    async def find_open_by_fingerprint(self, db: AsyncSession, fingerprint: str) -> Case | None:
        """The case currently holding the fingerprint's dedup marker, if any."""
        result = await db.execute(
            select(Case)
            .where(Case.open_fingerprint == fingerprint)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def release_stale(self, db: AsyncSession, fingerprint: str) -> Case | None:
        """
        Clear the dedup marker held by an older case for this fingerprint.

        Called right before creating a replacement case, once
        ``find_existing_case`` has ruled the holder out.

        Returns:
            The case that held the marker, if any
        """
        holder = await self.find_open_by_fingerprint(db, fingerprint)
        if holder is None:
            return None
        holder.open_fingerprint = None
        await db.flush()
        logger.info(f"Case {holder.case_number} no longer receives re-fires of {fingerprint}")
        return holder

    async def record_refire(
        self,
        db: AsyncSession,
        case: Case,
        alert: ParsedAlert,
        received_at: datetime,
    ) -> Case:
        """Fold a repeated firing into ``case``; its status is left untouched."""
        case.alert_count = (case.alert_count or 1) + 1
        case.last_alert_at = received_at
        case.updated_at = received_at

        await case_service.add_activity(
            db,
            case,
            ActivityType.REFIRED,
            description=f"Alert re-fired ({case.alert_count} deliveries)",
            details={
                "alert_id": alert.alert_id,
                "value": alert.value,
                "received_at": received_at.isoformat(),
            },
        )

        logger.info(f"Alert {alert.fingerprint} re-fired into case {case.case_number}")
        return case


# Singleton instance
dedup_engine = CaseDeduplicationEngine()
