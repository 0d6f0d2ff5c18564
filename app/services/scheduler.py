"""Polling scheduler keeping one APScheduler job per active integration."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from apscheduler.schedulers.background import BackgroundScheduler

from app.errors import NotFoundError
from app.utils.datetime import utc_now

from .integrations import IntegrationConfig
from .rate_fetcher import RateFetcher, TickResult

logger = logging.getLogger(__name__)

RESYNC_JOB_ID = "scheduler:resync"
JOB_ID_PREFIX = "integration:"
DEFAULT_RESYNC_SECONDS = 300


class JobTimer(Protocol):
    """Subset of the APScheduler scheduler API the polling scheduler drives."""

    def start(self) -> None: ...

    def shutdown(self, wait: bool = True) -> None: ...

    def add_job(self, func: Callable[..., Any], trigger: Any = None, **kwargs: Any) -> Any: ...

    def remove_job(self, job_id: str) -> None: ...


class IntegrationSource(Protocol):
    def list_active_with_decrypted_credentials(self) -> list[IntegrationConfig]: ...


@dataclass(frozen=True)
class ScheduledJob:
    """Live binding between an active integration and its timer."""

    integration: IntegrationConfig
    interval: int

    @property
    def id(self) -> str:
        return self.integration.id

    @property
    def timer_id(self) -> str:
        return f"{JOB_ID_PREFIX}{self.integration.id}"


@dataclass(frozen=True)
class JobDiff:
    to_create: list[IntegrationConfig] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)
    to_recreate: list[IntegrationConfig] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_remove or self.to_recreate)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "toCreate": [integration.id for integration in self.to_create],
            "toRemove": list(self.to_remove),
            "toRecreate": [integration.id for integration in self.to_recreate],
        }


def compute_diff(
    desired: Sequence[IntegrationConfig], current: Mapping[str, ScheduledJob]
) -> JobDiff:
    """Reconcile the desired integration set against the running job table.

    Jobs whose integration is gone are removed, missing ones are created and
    jobs whose interval drifted from the configuration are recreated.
    """

    desired_by_id = {integration.id: integration for integration in desired}
    to_remove = sorted(job_id for job_id in current if job_id not in desired_by_id)
    to_create: list[IntegrationConfig] = []
    to_recreate: list[IntegrationConfig] = []
    for integration_id, integration in desired_by_id.items():
        job = current.get(integration_id)
        if job is None:
            to_create.append(integration)
        elif job.interval != integration.poll_interval_seconds:
            to_recreate.append(integration)
    return JobDiff(to_create=to_create, to_remove=to_remove, to_recreate=to_recreate)


def default_timer_factory(timezone: str = "UTC") -> Callable[[], JobTimer]:
    def _factory() -> JobTimer:
        return BackgroundScheduler(timezone=timezone)

    return _factory


class PollingScheduler:
    """Owns the job table and the underlying timer for the process lifetime."""

    def __init__(
        self,
        integrations: IntegrationSource,
        fetcher: RateFetcher,
        *,
        timer_factory: Optional[Callable[[], JobTimer]] = None,
        resync_seconds: int = DEFAULT_RESYNC_SECONDS,
    ) -> None:
        self._integrations = integrations
        self._fetcher = fetcher
        self._timer_factory = timer_factory or default_timer_factory()
        self._resync_seconds = resync_seconds
        self._timer: Optional[JobTimer] = None
        self._jobs: dict[str, ScheduledJob] = {}
        self._lock = threading.RLock()

    @property
    def running(self) -> bool:
        return self._timer is not None

    @property
    def jobs(self) -> dict[str, ScheduledJob]:
        with self._lock:
            return dict(self._jobs)

    def start(self) -> None:
        with self._lock:
            if self._timer is not None:
                return
            timer = self._timer_factory()
            timer.start()
            timer.add_job(
                self.resync,
                trigger="interval",
                seconds=self._resync_seconds,
                id=RESYNC_JOB_ID,
                name="Resync integration jobs",
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
            self._timer = timer
        logger.info("Polling scheduler started (resync every %ss)", self._resync_seconds)
        self.resync()

    def stop(self) -> None:
        with self._lock:
            timer = self._timer
            if timer is None:
                return
            self._timer = None
            self._jobs.clear()
        # In-flight ticks are allowed to finish; no new ones will be scheduled.
        timer.shutdown(wait=False)
        logger.info("Polling scheduler stopped")

    def resync(self) -> Optional[JobDiff]:
        """Align running jobs with the active integrations.

        If the integration store cannot be read the current jobs are kept.
        """

        if not self.running:
            return None
        try:
            desired = self._integrations.list_active_with_decrypted_credentials()
        except Exception as exc:  # noqa: BLE001 - keep working jobs when resync fails
            logger.error("Scheduler resync failed; keeping existing jobs: %s", exc)
            return None

        with self._lock:
            if self._timer is None:
                return None
            diff = compute_diff(desired, self._jobs)
            for integration_id in diff.to_remove:
                self._unschedule(integration_id)
            for integration in diff.to_recreate:
                self._unschedule(integration.id)
                self._schedule(integration)
            for integration in diff.to_create:
                self._schedule(integration)
            # Refresh in-memory snapshots so ticks pick up new credentials or endpoints.
            for integration in desired:
                job = self._jobs.get(integration.id)
                if job is not None and job.integration != integration:
                    self._jobs[integration.id] = ScheduledJob(integration, job.interval)

        if not diff.is_empty:
            logger.info(
                "Scheduler resync: %d created, %d removed, %d recreated",
                len(diff.to_create),
                len(diff.to_remove),
                len(diff.to_recreate),
                extra={"event": "scheduler.resync"},
            )
        return diff

    def trigger_fetch(self, integration_id: str) -> TickResult:
        """Run a tick now without touching the job's regular cadence."""

        with self._lock:
            job = self._jobs.get(integration_id)
        if job is None:
            raise NotFoundError(
                f"Integration '{integration_id}' is not scheduled.",
                payload={"integration_id": integration_id},
            )
        return self._fetcher.fetch_and_store(job.integration)

    def status(self) -> dict[str, Any]:
        with self._lock:
            jobs = [
                {
                    "id": job.id,
                    "name": job.integration.name,
                    "provider": job.integration.provider,
                    "interval": job.interval,
                }
                for job in self._jobs.values()
            ]
            return {"running": self.running, "activeJobs": len(jobs), "jobs": jobs}

    def _schedule(self, integration: IntegrationConfig) -> None:
        timer = self._timer
        if timer is None:
            logger.warning("Scheduler is stopped; not scheduling %s", integration.name)
            return
        job = ScheduledJob(integration=integration, interval=integration.poll_interval_seconds)
        timer.add_job(
            self._run_tick,
            trigger="interval",
            seconds=job.interval,
            args=[integration.id],
            id=job.timer_id,
            name=f"Fetch rates: {integration.name}",
            next_run_time=utc_now(),
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._jobs[integration.id] = job
        logger.info(
            "Scheduled integration %s every %ss",
            integration.name,
            job.interval,
            extra={"integration_id": integration.id},
        )

    def _unschedule(self, integration_id: str) -> None:
        job = self._jobs.pop(integration_id, None)
        if job is None or self._timer is None:
            return
        try:
            self._timer.remove_job(job.timer_id)
        except LookupError as exc:
            logger.warning("Timer for %s already gone: %s", integration_id, exc)
        logger.info("Unscheduled integration", extra={"integration_id": integration_id})

    def _run_tick(self, integration_id: str) -> None:
        with self._lock:
            job = self._jobs.get(integration_id)
        if job is None:
            return
        try:
            self._fetcher.fetch_and_store(job.integration)
        except Exception as exc:  # noqa: BLE001 - a failed tick must not kill its job
            logger.exception(
                "Tick failed for %s: %s",
                job.integration.name,
                exc,
                extra={"event": "scheduler.tick", "integration_id": integration_id},
            )
