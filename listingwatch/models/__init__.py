"""SQLAlchemy models for listingwatch.

All models are imported here so metadata.create_all sees every table.
"""

from listingwatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from listingwatch.models.monitored_item import MonitoredItem, STOCK_STATES
from listingwatch.models.price_history import PriceHistory, PRICE_SOURCES
from listingwatch.models.alert import Alert, ALERT_TYPES, SEVERITIES
from listingwatch.models.tenant_settings import TenantSettings

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "MonitoredItem",
    "PriceHistory",
    "Alert",
    "TenantSettings",
    "STOCK_STATES",
    "PRICE_SOURCES",
    "ALERT_TYPES",
    "SEVERITIES",
]
