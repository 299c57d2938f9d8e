"""Service layer for AlertCase API."""

from .assignment_history_service import AssignmentHistoryService
from .case_lifecycle_service import CaseLifecycleService
from .case_service import CaseService
from .dedup_service import CaseDeduplicationEngine
from .notification_service import NotificationService
from .rule_assignment_service import RuleAssignmentService
from .scheduler_service import SchedulerService
from .sla_service import SLAService
from .webhook_service import WebhookIngestionPipeline

__all__ = [
    "AssignmentHistoryService",
    "CaseDeduplicationEngine",
    "CaseLifecycleService",
    "CaseService",
    "NotificationService",
    "RuleAssignmentService",
    "SLAService",
    "SchedulerService",
    "WebhookIngestionPipeline",
]
