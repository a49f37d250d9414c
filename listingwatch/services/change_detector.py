"""Change detection between stored item state and a fresh observation.

Pure comparison logic: every method returns ``AlertDraft`` objects and
never touches storage or the network. Drafts for alert types the tenant
disabled are dropped here.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional

from listingwatch.models.monitored_item import MonitoredItem
from listingwatch.models.tenant_settings import TenantSettings
from listingwatch.scrapers.base import CompetitorSummary, Snapshot

HIGH_SEVERITY_PERCENT = Decimal("10")

SOURCE_LABELS = {
    "marketplace": "Listing",
    "supplier": "Supplier",
    "competitor": "Competitor",
}


@dataclass
class AlertDraft:
    """An alert ready to be persisted and delivered."""

    type: str
    source: str
    message: str
    severity: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None


def _percent_change(old: Decimal, new: Decimal) -> Decimal:
    return (new - old) / old * 100


def _money(value: Decimal) -> str:
    return f"£{Decimal(value):.2f}"


class ChangeDetector:
    """Applies the price, stock, supplier and competitor alert rules."""

    def __init__(self, tenant_settings: TenantSettings):
        self.tenant_settings = tenant_settings
        self.threshold = Decimal(str(tenant_settings.effective_threshold()))
        self.competitor_percent = Decimal(str(tenant_settings.effective_competitor_percent()))

    def _enabled(self, drafts: List[Optional[AlertDraft]]) -> List[AlertDraft]:
        return [
            draft for draft in drafts
            if draft is not None and self.tenant_settings.is_alert_enabled(draft.type)
        ]

    def compare_price(
        self, source: str, old_price: Optional[Decimal], new_price: Optional[Decimal]
    ) -> Optional[AlertDraft]:
        """Price rule: a move of at least the tenant threshold from a known price."""
        if old_price is None or new_price is None:
            return None
        old = Decimal(old_price)
        new = Decimal(new_price)
        if old <= 0 or new == old:
            return None

        pct = _percent_change(old, new)
        if abs(pct) < self.threshold:
            return None

        increased = pct > 0
        return AlertDraft(
            type="price_increase" if increased else "price_decrease",
            source=source,
            message=(
                f"{SOURCE_LABELS[source]} price {'increased' if increased else 'decreased'} "
                f"from {_money(old)} to {_money(new)} ({pct:+.1f}%)"
            ),
            severity="high" if abs(pct) > HIGH_SEVERITY_PERCENT else "medium",
            old_value={"price": str(old)},
            new_value={"price": str(new), "percent_change": float(round(pct, 2))},
        )

    def compare_stock(
        self, source: str, old_state: Optional[str], new_state: str, out_of_stock_severity: str
    ) -> Optional[AlertDraft]:
        """Stock rule: transitions into and out of out_of_stock."""
        if new_state == old_state:
            return None
        label = SOURCE_LABELS[source]
        if new_state == "out_of_stock":
            return AlertDraft(
                type="out_of_stock",
                source=source,
                message=f"{label} is now out of stock",
                severity=out_of_stock_severity,
                old_value={"stock_state": old_state},
                new_value={"stock_state": new_state},
            )
        if old_state == "out_of_stock":
            return AlertDraft(
                type="back_in_stock",
                source=source,
                message=f"{label} is back in stock",
                severity="medium",
                old_value={"stock_state": old_state},
                new_value={"stock_state": new_state},
            )
        return None

    def compare_marketplace(self, item: MonitoredItem, snapshot: Snapshot) -> List[AlertDraft]:
        return self._enabled([
            self.compare_price("marketplace", item.marketplace_price, snapshot.price),
            self.compare_stock("marketplace", item.stock_state, snapshot.stock_state, "high"),
        ])

    def compare_supplier(self, item: MonitoredItem, snapshot: Snapshot) -> List[AlertDraft]:
        # A supplier running out blocks fulfilment, hence critical
        return self._enabled([
            self.compare_price("supplier", item.supplier_price, snapshot.price),
            self.compare_stock("supplier", item.supplier_stock_state, snapshot.stock_state, "critical"),
        ])

    def supplier_failure(self, item: MonitoredItem, error: str = "") -> List[AlertDraft]:
        """Supplier fetch failed; alert once until the supplier recovers."""
        if item.supplier_stock_state == "unknown":
            return []
        return self._enabled([
            AlertDraft(
                type="supplier_unavailable",
                source="supplier",
                message="Supplier page could not be checked" + (f": {error}" if error else ""),
                severity="high",
                old_value={"stock_state": item.supplier_stock_state},
                new_value={"stock_state": "unknown"},
            )
        ])

    def compare_competitor(
        self,
        item: MonitoredItem,
        summary: CompetitorSummary,
        our_price: Optional[Decimal],
    ) -> List[AlertDraft]:
        """Competitor rule: cheapest rival undercuts us by the tenant percent."""
        if our_price is None or Decimal(our_price) <= 0:
            return []
        ours = Decimal(our_price)
        difference = ours - summary.lowest_price
        if difference <= 0:
            return []

        pct = difference / ours * 100
        if pct < self.competitor_percent:
            return []

        previous = CompetitorSummary.from_dict(item.competitor_summary)
        if (
            previous is not None
            and previous.lowest_price == summary.lowest_price
            and previous.listing_id == summary.listing_id
            and previous.our_price is not None
            and previous.our_price == ours
        ):
            # Same undercut as last check; already reported
            return []

        seller = summary.seller_name or "a competitor"
        return self._enabled([
            AlertDraft(
                type="competitor_price",
                source="competitor",
                message=(
                    f"{seller} is selling for {_money(summary.lowest_price)}, "
                    f"{_money(difference)} ({pct:.1f}%) below your {_money(ours)}"
                ),
                severity="high" if pct > HIGH_SEVERITY_PERCENT else "medium",
                old_value={"our_price": str(ours)},
                new_value={
                    "lowest_price": str(summary.lowest_price),
                    "listing_id": summary.listing_id,
                    "seller_name": summary.seller_name,
                    "difference": str(difference),
                    "percent_below": float(round(pct, 2)),
                },
            )
        ])
