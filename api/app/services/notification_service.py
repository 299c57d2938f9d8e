"""Notification service: records notification intents for cases.

Delivery (email, chat, websocket) is done out of band by a job that reads
pending intents with ``get_pending`` and reports back via ``mark_processed``.
"""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    Case,
    Notification,
    NotificationAudience,
    NotificationEvent,
    NotificationStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for creating and draining notification intents."""

    async def create_notification(
        self,
        db: AsyncSession,
        case: Case,
        event_type: NotificationEvent,
        audience: NotificationAudience,
        title: str,
        message: str,
        recipient_user_id: int | None = None,
        recipient_team_id: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Notification:
        """
        Create a single pending notification intent.

        Args:
            db: Database session
            case: Case the notification is about
            event_type: What happened
            audience: USER, TEAM or ADMINS
            title: Notification title
            message: Notification message
            recipient_user_id: Recipient for USER audience
            recipient_team_id: Recipient for TEAM audience
            payload: Extra data for the delivery job

        Returns:
            The pending notification
        """
        notification = Notification(
            case_id=case.id,
            event_type=event_type,
            audience=audience,
            recipient_user_id=recipient_user_id,
            recipient_team_id=recipient_team_id,
            title=title,
            message=message,
            payload={
                "case_id": case.id,
                "case_number": case.case_number,
                "severity": case.severity.value,
                "status": case.status.value,
                **(payload or {}),
            },
            status=NotificationStatus.PENDING,
        )
        db.add(notification)
        return notification

    async def notify_case_created(self, db: AsyncSession, case: Case) -> list[Notification]:
        """
        Enqueue intents for a freshly created case.

        One intent per assigned user and per assigned team; a single
        admin-audience intent when nobody owns the case. Failures are logged and
        swallowed into an empty result so case creation is never rolled back by
        notification bookkeeping.
        """
        try:
            async with db.begin_nested():
                created: list[Notification] = []
                subject = f"{case.case_number} - {case.title}"

                for user_id in case.assigned_user_ids:
                    created.append(await self.create_notification(
                        db,
                        case,
                        NotificationEvent.CASE_ASSIGNED,
                        NotificationAudience.USER,
                        title=f"New Case Assigned: {case.case_number}",
                        message=f"You have been assigned {case.severity.value} case {subject}",
                        recipient_user_id=user_id,
                    ))

                for team_id in case.assigned_team_ids:
                    created.append(await self.create_notification(
                        db,
                        case,
                        NotificationEvent.TEAM_CASE_CREATED,
                        NotificationAudience.TEAM,
                        title=f"New Team Case: {case.case_number}",
                        message=f"Your team received {case.severity.value} case {subject}",
                        recipient_team_id=team_id,
                        payload={"skip_user_ids": case.assigned_user_ids},
                    ))

                if not created:
                    created.append(await self.create_notification(
                        db,
                        case,
                        NotificationEvent.UNASSIGNED_CASE_CREATED,
                        NotificationAudience.ADMINS,
                        title=f"Unassigned Case: {case.case_number}",
                        message=f"{case.severity.value} case {subject} has no owner",
                    ))

            logger.debug(f"Queued {len(created)} notification(s) for case {case.case_number}")
            return created

        except SQLAlchemyError as e:
            logger.error(f"Failed to queue notifications for case {case.case_number}: {e}")
            return []

    async def notify_assignees(
        self,
        db: AsyncSession,
        case: Case,
        event_type: NotificationEvent,
        title: str,
        message: str,
    ) -> list[Notification]:
        """Enqueue one intent per current assignee (users and teams); same failure policy as creation."""
        try:
            async with db.begin_nested():
                created = [
                    await self.create_notification(
                        db, case, event_type, NotificationAudience.USER, title, message,
                        recipient_user_id=user_id,
                    )
                    for user_id in case.assigned_user_ids
                ]
                created += [
                    await self.create_notification(
                        db, case, event_type, NotificationAudience.TEAM, title, message,
                        recipient_team_id=team_id,
                    )
                    for team_id in case.assigned_team_ids
                ]
            return created
        except SQLAlchemyError as e:
            logger.error(f"Failed to queue {event_type.value} notifications for case {case.case_number}: {e}")
            return []

    async def notify_admins(
        self,
        db: AsyncSession,
        case: Case,
        event_type: NotificationEvent,
        title: str,
        message: str,
    ) -> list[Notification]:
        try:
            async with db.begin_nested():
                notification = await self.create_notification(
                    db, case, event_type, NotificationAudience.ADMINS, title, message,
                )
            return [notification]
        except SQLAlchemyError as e:
            logger.error(f"Failed to queue admin notification for case {case.case_number}: {e}")
            return []

    async def get_pending(self, db: AsyncSession, limit: int = 100) -> list[Notification]:
        """Oldest pending intents, for the delivery job."""
        result = await db.execute(
            select(Notification)
            .where(Notification.status == NotificationStatus.PENDING)
            .order_by(Notification.created_at, Notification.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_processed(
        self,
        db: AsyncSession,
        notification_ids: list[int],
        status: NotificationStatus = NotificationStatus.SENT,
    ) -> int:
        """
        Record the delivery outcome for a batch of intents.

        Only PENDING rows are touched, so replays are harmless.

        Returns:
            Number of notifications updated
        """
        if not notification_ids:
            return 0
        try:
            result = await db.execute(
                update(Notification)
                .where(
                    Notification.id.in_(notification_ids),
                    Notification.status == NotificationStatus.PENDING,
                )
                .values(status=status, processed_at=utcnow(), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount
        except Exception as e:
            logger.error(f"Failed to mark notifications processed: {e}")
            raise


# Singleton instance
notification_service = NotificationService()
