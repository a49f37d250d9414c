"""Price history tracking for monitored items."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, ForeignKey, Numeric, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from listingwatch.models.base import Base, UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from listingwatch.models.monitored_item import MonitoredItem


PRICE_SOURCES = ("marketplace", "supplier", "competitor")


class PriceHistory(UUIDPrimaryKeyMixin, Base):
    """Append-only record of one successful observation of a source.

    One row is written per source per check, whether or not the price moved.
    """

    __tablename__ = "price_history"

    item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("monitored_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Source of price data: 'marketplace', 'supplier', 'competitor'"
    )
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, comment="Price at this point in time")
    stock_state: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    checked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="When this price was observed"
    )

    __table_args__ = (
        Index("idx_price_history_item_checked", "item_id", "checked_at"),
    )

    item: Mapped["MonitoredItem"] = relationship(back_populates="price_history")

    def __repr__(self) -> str:
        return f"<PriceHistory(id={self.id}, item_id={self.item_id}, source={self.source}, price={self.price})>"
