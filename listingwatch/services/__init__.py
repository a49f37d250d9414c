"""Services module for monitoring, alerting and import orchestration.

Services hold the business logic between the acquisition layer
(listingwatch.scrapers) and storage (listingwatch.services.repository).
"""

from listingwatch.services.repository import MonitoringRepository, SqlAlchemyRepository
from listingwatch.services.change_detector import AlertDraft, ChangeDetector
from listingwatch.services.notification_service import NotificationService
from listingwatch.services.alert_service import AlertService
from listingwatch.services.monitoring_service import CheckResult, CycleStats, MonitoringService
from listingwatch.services.import_service import ImportResult, ImportService

__all__ = [
    "MonitoringRepository",
    "SqlAlchemyRepository",
    "AlertDraft",
    "ChangeDetector",
    "NotificationService",
    "AlertService",
    "CheckResult",
    "CycleStats",
    "MonitoringService",
    "ImportResult",
    "ImportService",
]
