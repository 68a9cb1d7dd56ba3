"""Main entry point for the RFQ distribution service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from rfq_dispatch.config.environment import EnvironmentConfig
from rfq_dispatch.config.exceptions import ConfigurationError
from rfq_dispatch.config.loader import load_config, validate_config_file
from rfq_dispatch.config.models import AppConfig
from rfq_dispatch.distribution.coordinator import DistributionCoordinator
from rfq_dispatch.distribution.intake import RequestIntake
from rfq_dispatch.distribution.reconciliation import ReconciliationSweep
from rfq_dispatch.distribution.targets import TargetResolver
from rfq_dispatch.distribution.worker import DeliveryWorker
from rfq_dispatch.logging import get_logger
from rfq_dispatch.logging.config import configure_logging
from rfq_dispatch.matching import AgencyMatcher
from rfq_dispatch.notifications.templates import MessageRenderer
from rfq_dispatch.notifications.transport import HttpMessageTransport, MessageTransport
from rfq_dispatch.persistence import RecordNotFoundError
from rfq_dispatch.persistence.database import close_database, init_database
from rfq_dispatch.queue import CeleryJobQueue, JobQueue, bind_runtime, celery_app, configure_celery
from rfq_dispatch.queue.celery_app import DELIVERY_QUEUE
from rfq_dispatch.scheduler import INTAKE_JOB_ID, SWEEP_JOB_ID, PeriodicJob, SchedulerService

logger = get_logger(__name__, component="cli")


@dataclass
class ServiceComponents:
    """Wired service objects shared by every run mode."""

    job_queue: JobQueue
    coordinator: DistributionCoordinator
    worker: DeliveryWorker
    intake: RequestIntake
    sweep: ReconciliationSweep
    transport: MessageTransport

    def stop(self) -> None:
        self.transport.close()


def build_components(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    transport: Optional[MessageTransport] = None,
    job_queue: Optional[JobQueue] = None,
) -> ServiceComponents:
    """Wire matcher, queue, coordinator, worker, intake and sweep.

    Delivery tasks are bound to this process's worker, so a Celery worker
    started from here runs DeliveryWorker.process. The database must be
    initialized.
    """
    configure_celery(env_config.broker_url)
    job_queue = job_queue or CeleryJobQueue()
    transport = transport or HttpMessageTransport(
        base_url=env_config.transport_base_url,
        token=env_config.transport_token,
        timeout=app_config.delivery.request_timeout,
        user_agent=app_config.delivery.user_agent,
    )
    coordinator = DistributionCoordinator(AgencyMatcher(app_config.matching), job_queue)
    worker = DeliveryWorker(
        coordinator=coordinator,
        resolver=TargetResolver(),
        renderer=MessageRenderer(),
        transport=transport,
        max_fanout_workers=app_config.delivery.max_fanout_workers,
    )
    bind_runtime(worker.process, app_config.queue)
    intake = RequestIntake(coordinator, app_config.intake)
    sweep = ReconciliationSweep(job_queue, app_config.reconciliation)
    return ServiceComponents(job_queue, coordinator, worker, intake, sweep, transport)


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    env_config.log_level = env_config.log_level.upper()
    return app_config, env_config


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="RFQ distribution service - matches trip requests to agencies and delivers them"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--distribute",
        metavar="REQUEST_ID",
        help="Distribute one trip request, enqueue its deliveries and exit",
    )
    mode.add_argument(
        "--sweep-once",
        action="store_true",
        help="Run one reconciliation sweep and exit",
    )
    mode.add_argument(
        "--worker",
        action="store_true",
        help="Run a Celery worker that delivers queued distributions",
    )
    mode.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate the configuration file and exit",
    )
    return parser.parse_args(argv)


def run_distribute(components: ServiceComponents, trip_request_id: str) -> int:
    try:
        result = components.coordinator.distribute(trip_request_id)
    except RecordNotFoundError as e:
        logger.error(str(e), extra={"event": "service.distribute.not_found"})
        return 1

    stats = components.coordinator.get_stats(trip_request_id)
    logger.info(
        f"Distribution run finished: {result.total_matched} agencies matched",
        extra={
            "event": "service.distribute.completed",
            "total_matched": result.total_matched,
            "delivered": stats.delivered,
            "failed": stats.failed,
            "pending": stats.pending,
        },
    )
    return 0


def run_sweep_once(components: ServiceComponents) -> int:
    requeued = components.sweep.run_once()
    logger.info(
        f"Reconciliation sweep finished: {requeued} requeued",
        extra={"event": "service.sweep.completed", "requeued_count": requeued},
    )
    return 0


def run_worker(app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    """Consume delivery tasks in this process until Celery stops."""
    logger.info(
        f"Starting Celery worker with concurrency {app_config.queue.workers}",
        extra={
            "event": "service.worker_mode.started",
            "concurrency": app_config.queue.workers,
            "queue": DELIVERY_QUEUE,
        },
    )
    celery_app.worker_main(
        argv=[
            "worker",
            "--pool=threads",
            f"--concurrency={app_config.queue.workers}",
            f"--queues={DELIVERY_QUEUE}",
            f"--loglevel={env_config.log_level}",
        ]
    )
    return 0


def build_periodic_jobs(components: ServiceComponents, app_config: AppConfig) -> List[PeriodicJob]:
    jobs = []
    if app_config.intake.enabled:
        jobs.append(
            PeriodicJob(
                job_id=INTAKE_JOB_ID,
                name="Request intake",
                func=components.intake.run_once,
                interval_seconds=app_config.intake.interval_seconds,
                first_run_delay_seconds=0,
            )
        )
    if app_config.reconciliation.enabled:
        jobs.append(
            PeriodicJob(
                job_id=SWEEP_JOB_ID,
                name="Reconciliation sweep",
                func=components.sweep.run_once,
                interval_seconds=app_config.reconciliation.interval_seconds,
            )
        )
    return jobs


def run_daemon(
    components: ServiceComponents,
    app_config: AppConfig,
    shutdown_event: Optional[threading.Event] = None,
) -> int:
    shutdown_event = shutdown_event or threading.Event()
    jobs = build_periodic_jobs(components, app_config)
    scheduler_service = SchedulerService(jobs, shutdown_event=shutdown_event) if jobs else None

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if scheduler_service:
        scheduler_service.start()

    logger.info(
        "Scheduler running. Press Ctrl+C to stop",
        extra={
            "event": "service.daemon_mode.started",
            "intake_enabled": app_config.intake.enabled,
            "reconciliation_enabled": app_config.reconciliation.enabled,
        },
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down", extra={"event": "service.keyboard_interrupt"})

    if scheduler_service:
        scheduler_service.shutdown(wait=False)
    return 0


def _mode_name(args: argparse.Namespace) -> str:
    if args.distribute:
        return "distribute"
    if args.sweep_once:
        return "sweep-once"
    if args.worker:
        return "worker"
    return "daemon"


def main(argv=None) -> int:
    """
    Main entry point for the RFQ distribution service.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = _parse_args(argv)

    if args.validate_config:
        config_path = args.config or Path("config.yaml")
        return 0 if validate_config_file(config_path) else 1

    components = None
    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "RFQ distribution service starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "mode": _mode_name(args),
            },
        )

        init_database(env_config.database_url)

        components = build_components(app_config, env_config)

        if args.distribute:
            return run_distribute(components, args.distribute)
        if args.sweep_once:
            return run_sweep_once(components)
        if args.worker:
            return run_worker(app_config, env_config)
        return run_daemon(components, app_config)

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1
    finally:
        if components is not None:
            components.stop()
        close_database()
        logger.info(
            "RFQ distribution service stopped",
            extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
        )


if __name__ == "__main__":
    sys.exit(main())
