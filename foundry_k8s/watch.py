"""Build watchers: poll a build job to a terminal state, then deploy."""

import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Optional

from kubernetes.client import V1Job

from .cluster import ClusterGateway
from .deployments import DeployReconciler
from .errors import BuildTimeoutError, FoundryError, NotFoundError
from .metrics import active_build_watchers, build_outcomes_total
from .models import BuildRequest, ProjectStatus
from .naming import build_job_name
from .store import StatusStore

logger = logging.getLogger(__name__)


class WatchState(str, Enum):
    """Build watcher state."""

    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class BuildWatcher:
    """
    Watches one build job and drives the project through deploy.

    States: POLLING -> SUCCEEDED | FAILED | TIMED_OUT | CANCELLED.

    Every tick waits on the cancellation token for at most one poll
    interval, then checks the deadline, then reads the job. Read errors are
    retried on the next tick. A failed pod ends the build with status
    ``error``; a succeeded pod moves the project to ``deploying``, runs the
    deploy reconciler and finishes with ``running`` or ``error``. A
    cancelled watcher writes no further status.
    """

    def __init__(
        self,
        request: BuildRequest,
        gateway: ClusterGateway,
        reconciler: DeployReconciler,
        store: StatusStore,
        namespace: str,
        poll_interval: float = 5.0,
        timeout: float = 20 * 60,
        started_at: Optional[float] = None,
    ):
        """
        Initialize build watcher.

        Args:
            request: Build that was triggered
            gateway: Cluster gateway
            reconciler: Deploy reconciler run after a successful build
            store: Project status store
            namespace: Namespace of the build job
            poll_interval: Seconds between job reads
            timeout: Seconds from ``started_at`` before the build is abandoned
            started_at: Event loop time of the trigger (defaults to run start)
        """
        self.request = request
        self.gateway = gateway
        self.reconciler = reconciler
        self.store = store
        self.namespace = namespace
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.started_at = started_at
        self.job_name = build_job_name(request.project_id)
        self.state = WatchState.POLLING
        self.error: Optional[FoundryError] = None
        self.polls = 0
        self._cancelled = asyncio.Event()

    @property
    def project_id(self) -> str:
        return self.request.project_id

    def cancel(self) -> None:
        """Signal the watcher to stop at its next suspension point."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self) -> WatchState:
        """
        Poll until the build reaches a terminal state.

        Returns:
            Final watcher state
        """
        loop = asyncio.get_running_loop()
        started_at = self.started_at if self.started_at is not None else loop.time()
        deadline = started_at + self.timeout
        active_build_watchers.inc()

        try:
            while self.state is WatchState.POLLING:
                if await self._wait_tick(loop, deadline):
                    self.state = WatchState.CANCELLED
                    logger.info(f"Build watcher for {self.job_name} cancelled")
                    break

                if loop.time() >= deadline:
                    self.error = BuildTimeoutError(
                        f"Build {self.job_name} did not finish within {self.timeout:.0f}s"
                    )
                    logger.warning(str(self.error))
                    self.state = WatchState.TIMED_OUT
                    await self._set_status(ProjectStatus.ERROR)
                    break

                job = await self._poll()
                if job is None or job.status is None:
                    continue

                if (job.status.failed or 0) > 0:
                    logger.warning(f"Build failed for {self.job_name}")
                    self.state = WatchState.FAILED
                    await self._set_status(ProjectStatus.ERROR)
                elif (job.status.succeeded or 0) > 0:
                    logger.info(f"Build succeeded for {self.job_name}. Deploying...")
                    self.state = WatchState.SUCCEEDED
                    await self._deploy()

        except Exception as e:
            logger.error(f"Build watcher for {self.job_name} crashed: {e}", exc_info=True)
            self.state = WatchState.FAILED
            await self._set_status(ProjectStatus.ERROR)
            raise
        finally:
            active_build_watchers.dec()
            build_outcomes_total.labels(outcome=self.state.value).inc()

        return self.state

    async def _wait_tick(self, loop: asyncio.AbstractEventLoop, deadline: float) -> bool:
        """Sleep one poll interval or until cancelled. Returns True if cancelled."""
        delay = max(0.0, min(self.poll_interval, deadline - loop.time()))
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _poll(self) -> Optional[V1Job]:
        self.polls += 1
        try:
            return await asyncio.to_thread(self.gateway.get_job, self.namespace, self.job_name)
        except NotFoundError:
            logger.debug(f"Job {self.job_name} not visible yet")
        except FoundryError as e:
            logger.warning(f"Error getting job {self.job_name}: {e}")
        return None

    async def _deploy(self) -> None:
        await self._set_status(ProjectStatus.DEPLOYING)
        try:
            url = await asyncio.to_thread(
                self.reconciler.deploy, self.request.deploy_request()
            )
        except FoundryError as e:
            logger.error(f"Deploy failed for {self.request.name}: {e}")
            self.error = e
            await self._set_status(ProjectStatus.ERROR)
            return
        await self._set_status(ProjectStatus.RUNNING, url)

    async def _set_status(self, status: ProjectStatus, deploy_url: Optional[str] = None) -> None:
        if self.cancelled:
            logger.info(f"Skipping status {status.value} for cancelled build {self.job_name}")
            return
        await self.store.update_status(self.project_id, status, deploy_url)


class WatcherRegistry:
    """
    Supervises build watchers, at most one per project.

    Starting a watcher for a project cancels the one already running for it.
    """

    def __init__(self):
        self._watchers: dict[str, tuple[BuildWatcher, asyncio.Task]] = {}

    def start(self, watcher: BuildWatcher) -> asyncio.Task:
        """
        Run a watcher as a background task.

        Args:
            watcher: Watcher to run

        Returns:
            The task running the watcher
        """
        self.cancel(watcher.project_id)
        task = asyncio.create_task(
            watcher.run(), name=f"build-watch-{watcher.project_id}"
        )
        self._watchers[watcher.project_id] = (watcher, task)
        task.add_done_callback(partial(self._on_done, watcher.project_id))
        return task

    def _on_done(self, project_id: str, task: asyncio.Task) -> None:
        current = self._watchers.get(project_id)
        if current and current[1] is task:
            del self._watchers[project_id]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Build watcher for {project_id} exited with an error")

    def cancel(self, project_id: str) -> bool:
        """
        Cancel a project's watcher.

        Args:
            project_id: Project ID

        Returns:
            True if a watcher was cancelled, False if none was running
        """
        entry = self._watchers.pop(project_id, None)
        if entry is None:
            return False
        watcher, _ = entry
        watcher.cancel()
        logger.info(f"Cancelled build watcher for project {project_id}")
        return True

    def get(self, project_id: str) -> Optional[BuildWatcher]:
        entry = self._watchers.get(project_id)
        return entry[0] if entry else None

    def is_watching(self, project_id: str) -> bool:
        return project_id in self._watchers

    @property
    def active_count(self) -> int:
        return len(self._watchers)

    async def shutdown(self) -> None:
        """Cancel every watcher and wait for them to exit."""
        tasks = [task for _, task in self._watchers.values()]
        for project_id in list(self._watchers):
            self.cancel(project_id)
        await asyncio.gather(*tasks, return_exceptions=True)
