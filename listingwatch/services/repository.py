"""Persistence boundary for the monitoring core.

The core talks to storage only through ``MonitoringRepository``. The
SQLAlchemy implementation opens one short session per call so that a failure
on one item never rolls back work already committed for another.
"""

import uuid
from typing import List, Optional, Protocol

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listingwatch.models.alert import Alert
from listingwatch.models.monitored_item import MonitoredItem
from listingwatch.models.price_history import PriceHistory
from listingwatch.models.tenant_settings import TenantSettings

logger = structlog.get_logger(__name__)


class MonitoringRepository(Protocol):
    """Storage operations the scheduler, monitor and importer depend on."""

    async def find_item(self, tenant_id: str, marketplace_item_id: str) -> Optional[MonitoredItem]: ...

    async def upsert_item(self, item: MonitoredItem) -> MonitoredItem: ...

    async def append_history(self, entry: PriceHistory) -> PriceHistory: ...

    async def create_alert(self, alert: Alert) -> Alert: ...

    async def mark_alert_emailed(self, alert_id: uuid.UUID) -> None: ...

    async def get_tenant_settings(self, tenant_id: str) -> TenantSettings: ...

    async def list_active_items(self, tenant_id: str) -> List[MonitoredItem]: ...

    async def list_tenant_ids(self) -> List[str]: ...


class SqlAlchemyRepository:
    """``MonitoringRepository`` backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self.logger = logger.bind(service="repository")

    async def find_item(
        self, tenant_id: str, marketplace_item_id: str
    ) -> Optional[MonitoredItem]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MonitoredItem).where(
                    MonitoredItem.tenant_id == tenant_id,
                    MonitoredItem.marketplace_item_id == marketplace_item_id,
                )
            )
            return result.scalar_one_or_none()

    async def upsert_item(self, item: MonitoredItem) -> MonitoredItem:
        """Insert or update an item by primary key.

        Returns the session-bound copy; callers should keep using the
        returned instance.
        """
        async with self._session_factory() as session:
            merged = await session.merge(item)
            await session.commit()
            return merged

    async def append_history(self, entry: PriceHistory) -> PriceHistory:
        async with self._session_factory() as session:
            session.add(entry)
            await session.commit()
            return entry

    async def create_alert(self, alert: Alert) -> Alert:
        async with self._session_factory() as session:
            session.add(alert)
            await session.commit()
            self.logger.info(
                "alert_created",
                alert_id=str(alert.id),
                item_id=str(alert.item_id),
                type=alert.type,
                severity=alert.severity,
            )
            return alert

    async def mark_alert_emailed(self, alert_id: uuid.UUID) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Alert).where(Alert.id == alert_id).values(email_sent=True)
            )
            await session.commit()

    async def get_tenant_settings(self, tenant_id: str) -> TenantSettings:
        """Load a tenant's settings, creating the defaults on first use."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantSettings).where(TenantSettings.tenant_id == tenant_id)
            )
            tenant_settings = result.scalar_one_or_none()
            if tenant_settings is None:
                tenant_settings = TenantSettings(tenant_id=tenant_id)
                session.add(tenant_settings)
                await session.commit()
                self.logger.info("tenant_settings_created", tenant_id=tenant_id)
            return tenant_settings

    async def save_tenant_settings(self, tenant_settings: TenantSettings) -> TenantSettings:
        async with self._session_factory() as session:
            merged = await session.merge(tenant_settings)
            await session.commit()
            return merged

    async def list_active_items(self, tenant_id: str) -> List[MonitoredItem]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MonitoredItem)
                .where(
                    MonitoredItem.tenant_id == tenant_id,
                    MonitoredItem.is_active == True,  # noqa: E712
                )
                .order_by(MonitoredItem.created_at)
            )
            return list(result.scalars().all())

    async def list_tenant_ids(self) -> List[str]:
        """Tenants with stored settings or at least one active item."""
        async with self._session_factory() as session:
            settings_ids = await session.execute(select(TenantSettings.tenant_id))
            item_ids = await session.execute(
                select(MonitoredItem.tenant_id)
                .where(MonitoredItem.is_active == True)  # noqa: E712
                .distinct()
            )
            tenant_ids = set(settings_ids.scalars().all()) | set(item_ids.scalars().all())
            return sorted(tenant_ids)

    async def list_history(self, item_id: uuid.UUID, source: str = None) -> List[PriceHistory]:
        async with self._session_factory() as session:
            stmt = select(PriceHistory).where(PriceHistory.item_id == item_id)
            if source:
                stmt = stmt.where(PriceHistory.source == source)
            result = await session.execute(stmt.order_by(PriceHistory.checked_at))
            return list(result.scalars().all())

    async def list_alerts(self, tenant_id: str) -> List[Alert]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Alert)
                .where(Alert.tenant_id == tenant_id)
                .order_by(Alert.created_at)
            )
            return list(result.scalars().all())
