"""Alert raised by change detection."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import String, Text, ForeignKey, Boolean, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from listingwatch.models.base import Base, JSONType, UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from listingwatch.models.monitored_item import MonitoredItem


ALERT_TYPES = (
    "price_increase",
    "price_decrease",
    "out_of_stock",
    "back_in_stock",
    "supplier_unavailable",
    "competitor_price",
)
SEVERITIES = ("low", "medium", "high", "critical")


class Alert(UUIDPrimaryKeyMixin, Base):
    """Persisted notification about a detected change on a monitored item."""

    __tablename__ = "alerts"

    item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("monitored_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    type: Mapped[str] = mapped_column(String(30), nullable=False, comment="Alert type")
    source: Mapped[str] = mapped_column(
        String(20), nullable=False,
        comment="marketplace / supplier / competitor"
    )
    old_value: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    new_value: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")

    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="Set by the consumer when the alert has been seen"
    )
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("idx_alerts_tenant_created", "tenant_id", "created_at"),
    )

    item: Mapped["MonitoredItem"] = relationship(back_populates="alerts")

    def __repr__(self) -> str:
        return f"<Alert(item={self.item_id}, type={self.type}, severity={self.severity})>"
