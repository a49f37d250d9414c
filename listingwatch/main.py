"""listingwatch service entry point.

Builds the shared services, starts the per-tenant scheduler and runs until
interrupted. Run with ``python -m listingwatch.main`` or the
``listingwatch`` console script.
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import structlog

from listingwatch.config import settings
from listingwatch.core.logging import configure_logging
from listingwatch.db.session import async_session_factory, create_tables
from listingwatch.scrapers.factory import AdapterFactory, get_adapter_factory
from listingwatch.scrapers.scheduler import MonitoringScheduler
from listingwatch.services.alert_service import AlertService
from listingwatch.services.import_service import ImportService
from listingwatch.services.monitoring_service import MonitoringService
from listingwatch.services.notification_service import NotificationService
from listingwatch.services.repository import SqlAlchemyRepository

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    """Everything a running process needs, wired once."""

    repository: SqlAlchemyRepository
    adapters: AdapterFactory
    monitoring: MonitoringService
    importer: ImportService
    scheduler: MonitoringScheduler


def build_services() -> Services:
    repository = SqlAlchemyRepository(async_session_factory)
    adapters = get_adapter_factory()
    alert_service = AlertService(repository, NotificationService())
    monitoring = MonitoringService(repository, adapters, alert_service)
    return Services(
        repository=repository,
        adapters=adapters,
        monitoring=monitoring,
        importer=ImportService(repository, adapters),
        scheduler=MonitoringScheduler(repository, monitoring),
    )


@asynccontextmanager
async def lifespan() -> AsyncIterator[Services]:
    """Application lifespan: startup and shutdown."""
    logger.info("service_starting", environment=settings.ENVIRONMENT, debug=settings.DEBUG)

    try:
        await create_tables()
        logger.info("database_tables_verified")
    except Exception as e:
        logger.error("database_init_failed", error=str(e), exc_info=True)
        raise

    services = build_services()

    if settings.ENVIRONMENT != "test":
        services.scheduler.start()
        try:
            jobs_count = await services.scheduler.load_tenant_jobs()
            logger.info("scheduler_ready", tenant_jobs=jobs_count)
        except Exception as e:
            logger.error("tenant_jobs_load_failed", error=str(e), exc_info=True)
        services.scheduler.schedule_initial_check()
    else:
        logger.info("scheduler_disabled", reason="test_environment")

    try:
        yield services
    finally:
        logger.info("service_stopping")
        services.scheduler.stop()
        try:
            await services.adapters.close()
            logger.info("browser_manager_stopped")
        except Exception as e:
            logger.warning("browser_manager_stop_failed", error=str(e))


async def run() -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers are unavailable on Windows event loops
            pass

    async with lifespan():
        await stop_event.wait()


def main() -> None:
    configure_logging()
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
