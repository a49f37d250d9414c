"""Monitored marketplace listing owned by a tenant."""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, Numeric, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from listingwatch.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from listingwatch.models.price_history import PriceHistory
    from listingwatch.models.alert import Alert


STOCK_STATES = ("in_stock", "out_of_stock", "low_stock", "unknown")


class MonitoredItem(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A marketplace listing tracked for one tenant.

    Each item is uniquely identified by the (tenant_id, marketplace_item_id)
    pair. Holds the last observed marketplace, supplier and competitor state
    so the next check can be compared against it.
    """

    __tablename__ = "monitored_items"

    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True,
        comment="Owning tenant identifier"
    )
    marketplace_item_id: Mapped[str] = mapped_column(
        String(64), nullable=False,
        comment="Listing ID on the marketplace"
    )
    url: Mapped[str] = mapped_column(String(2000), nullable=False, comment="Listing URL")
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Marketplace state
    marketplace_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True,
        comment="Last observed listing price"
    )
    stock_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default="unknown",
        comment="in_stock / out_of_stock / low_stock / unknown"
    )
    images: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    seller_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Supplier state
    supplier_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    supplier_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    supplier_stock_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default="unknown"
    )
    supplier_sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Competitor state
    competitor_listings: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list,
        comment="Cheapest competing offers from the last check"
    )
    competitor_summary: Mapped[Optional[dict]] = mapped_column(
        JSONType, nullable=True,
        comment="Cheapest competitor summary from the last check"
    )

    # Derived
    profit: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    profit_margin: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(7, 2), nullable=True,
        comment="Profit as a percentage of the marketplace price"
    )

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
        comment="Last time any source was checked"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "marketplace_item_id", name="uq_item_tenant_marketplace"),
        Index("idx_items_tenant_active", "tenant_id", "is_active"),
    )

    price_history: Mapped[list["PriceHistory"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    alerts: Mapped[list["Alert"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def calculate_profit(self) -> None:
        """Recompute profit and margin from the current prices."""
        if self.marketplace_price is None or self.supplier_price is None:
            return
        marketplace = Decimal(self.marketplace_price)
        supplier = Decimal(self.supplier_price)
        self.profit = (marketplace - supplier).quantize(Decimal("0.01"), ROUND_HALF_UP)
        if marketplace > 0:
            self.profit_margin = (self.profit / marketplace * 100).quantize(
                Decimal("0.01"), ROUND_HALF_UP
            )
        else:
            self.profit_margin = None

    def __repr__(self) -> str:
        return (
            f"<MonitoredItem(id={self.id}, tenant={self.tenant_id}, "
            f"item={self.marketplace_item_id}, price={self.marketplace_price})>"
        )
