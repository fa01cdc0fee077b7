from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import AppConfig
from app.services.application.schedule_store import ScheduleStore
from app.services.protocols import DeviceControl, ForecastEvaluator
from app.services.utilities.energy_gateway_client import EnergyGatewayClient
from app.utils.time import Clock, SystemClock
from app.workers.schedule_executor import ScheduleExecutor
from app.workers.state_reconciler import StateReconciler
from app.workers.unified_scheduler import UnifiedScheduler
from app.workers.weather_planner import WeatherAwarePlanner
from infrastructure.database.repositories.job_leases import LeaseManager
from infrastructure.database.repositories.schedule_events import ScheduleEventRepository
from infrastructure.database.repositories.schedule_history import ScheduleHistoryRepository
from infrastructure.database.repositories.user_profiles import UserProfileRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage the scheduler's services."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    audit_logger: AuditLogger
    clock: Clock
    # Repositories
    event_repo: ScheduleEventRepository
    history_repo: ScheduleHistoryRepository
    profile_repo: UserProfileRepository
    lease_manager: LeaseManager
    # External collaborators
    device: DeviceControl
    forecast: ForecastEvaluator
    gateway: Optional[EnergyGatewayClient]
    # Application services and jobs
    schedule_store: ScheduleStore
    executor: ScheduleExecutor
    reconciler: StateReconciler
    planner: WeatherAwarePlanner
    scheduler: UnifiedScheduler

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        device: DeviceControl | None = None,
        forecast: ForecastEvaluator | None = None,
        clock: Clock | None = None,
        start_scheduler: bool = False,
    ) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            device: Battery collaborator; defaults to the gateway client
            forecast: Forecast collaborator; defaults to the gateway client
            clock: Time source; defaults to the system clock
            start_scheduler: Whether to register the jobs and start the scheduler loop
        """
        logger.info("Building ServiceContainer...")
        clock = clock or SystemClock()

        audit_logger = AuditLogger(config.audit_log_path, config.log_level)
        database = SQLiteDatabaseHandler(config.database_path)
        database.init_app(None)

        event_repo = ScheduleEventRepository(database)
        history_repo = ScheduleHistoryRepository(database, audit_logger=audit_logger)
        profile_repo = UserProfileRepository(database)
        lease_manager = LeaseManager(database, instance_id=config.instance_id or None, clock=clock)

        gateway: EnergyGatewayClient | None = None
        if device is None or forecast is None:
            gateway = EnergyGatewayClient(
                config.gateway_base_url,
                api_token=config.gateway_api_token or None,
                timeout=config.gateway_timeout_seconds,
            )
        device = device or gateway
        forecast = forecast or gateway

        schedule_store = ScheduleStore(
            events=event_repo,
            history=history_repo,
            device=device,
            profiles=profile_repo,
            clock=clock,
        )
        executor = ScheduleExecutor(
            event_repo,
            history_repo,
            device,
            clock=clock,
            lease=lease_manager,
            max_retry_attempts=config.retry_max_attempts,
            retry_base_delay_ms=config.retry_base_delay_ms,
        )
        reconciler = StateReconciler(event_repo, history_repo, device, clock=clock, lease=lease_manager)
        planner = WeatherAwarePlanner(
            event_repo,
            history_repo,
            forecast,
            profile_repo,
            reconciler,
            clock=clock,
            lease=lease_manager,
        )
        scheduler = UnifiedScheduler(max_workers=config.scheduler_max_workers)

        container = cls(
            config=config,
            database=database,
            audit_logger=audit_logger,
            clock=clock,
            event_repo=event_repo,
            history_repo=history_repo,
            profile_repo=profile_repo,
            lease_manager=lease_manager,
            device=device,
            forecast=forecast,
            gateway=gateway,
            schedule_store=schedule_store,
            executor=executor,
            reconciler=reconciler,
            planner=planner,
            scheduler=scheduler,
        )

        if start_scheduler:
            from app.workers.scheduled_tasks import configure_scheduler

            try:
                configure_scheduler(container.scheduler, container)
                logger.info("UnifiedScheduler initialized and started")
            except Exception as e:
                raise RuntimeError("Failed to initialize UnifiedScheduler") from e

        logger.info("ServiceContainer built successfully.")
        return container

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        try:
            self.scheduler.shutdown()
            logger.info("UnifiedScheduler stopped")
        except Exception as e:
            logger.warning(f"Failed to stop UnifiedScheduler: {e}")

        if self.gateway is not None:
            self.gateway.close()
        self.database.close_db()
        logger.info("ServiceContainer shutdown complete.")
