"""Per-tenant monitoring and notification preferences."""

from typing import Optional

from sqlalchemy import String, Boolean, Integer, Float
from sqlalchemy.orm import Mapped, mapped_column, validates

from listingwatch.config import settings
from listingwatch.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin


class TenantSettings(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Monitoring cadence, alert thresholds and notification targets."""

    __tablename__ = "tenant_settings"

    tenant_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True,
    )
    monitoring_frequency: Mapped[int] = mapped_column(
        Integer, nullable=False,
        default=lambda: settings.DEFAULT_MONITORING_FREQUENCY,
        comment="Minutes between checks of one item"
    )
    price_change_threshold: Mapped[float] = mapped_column(
        Float, nullable=False,
        default=lambda: settings.PRICE_CHANGE_THRESHOLD,
        comment="Percent change needed to raise a price alert"
    )
    competitor_alert_percent: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True,
        comment="Overrides the global competitor undercut percent"
    )
    email_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_address: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    webhook_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    alert_types: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict,
        comment="Alert type -> enabled; missing types are enabled"
    )

    @validates("monitoring_frequency")
    def _validate_frequency(self, key, value):
        if value is None:
            return value
        if not (settings.MIN_MONITORING_FREQUENCY <= value <= settings.MAX_MONITORING_FREQUENCY):
            raise ValueError(
                f"monitoring_frequency must be between {settings.MIN_MONITORING_FREQUENCY} "
                f"and {settings.MAX_MONITORING_FREQUENCY} minutes"
            )
        return value

    @validates("price_change_threshold", "competitor_alert_percent")
    def _validate_percent(self, key, value):
        if value is not None and not (0 <= value <= 100):
            raise ValueError(f"{key} must be between 0 and 100")
        return value

    def is_alert_enabled(self, alert_type: str) -> bool:
        return bool((self.alert_types or {}).get(alert_type, True))

    def effective_competitor_percent(self) -> float:
        if self.competitor_alert_percent is not None:
            return self.competitor_alert_percent
        return settings.COMPETITOR_PRICE_ALERT_PERCENT

    def effective_threshold(self) -> float:
        if self.price_change_threshold is None:
            return settings.PRICE_CHANGE_THRESHOLD
        return self.price_change_threshold

    def effective_frequency(self) -> int:
        if self.monitoring_frequency is None:
            return settings.DEFAULT_MONITORING_FREQUENCY
        return self.monitoring_frequency

    def __repr__(self) -> str:
        return f"<TenantSettings(tenant={self.tenant_id}, frequency={self.monitoring_frequency})>"
