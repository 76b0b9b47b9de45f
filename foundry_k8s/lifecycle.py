"""Start, stop and teardown of deployed projects."""

import asyncio
import logging
from typing import Optional

from .cluster import ClusterGateway
from .config import Settings
from .errors import InvalidActionError
from .models import LifecycleAction, ProjectStatus
from .naming import build_job_name
from .reconcile import CleanupRun
from .store import StatusStore
from .watch import WatcherRegistry

logger = logging.getLogger(__name__)


class LifecycleController:
    """Operator actions on a project's running workload."""

    def __init__(
        self,
        gateway: ClusterGateway,
        store: StatusStore,
        settings: Settings,
        watchers: Optional[WatcherRegistry] = None,
    ):
        """
        Initialize lifecycle controller.

        Args:
            gateway: Cluster gateway
            store: Project status store
            settings: Application settings
            watchers: Build watcher registry, cancelled on delete
        """
        self.gateway = gateway
        self.store = store
        self.settings = settings
        self.watchers = watchers

    async def apply_action(self, project_id: str, action: str) -> ProjectStatus:
        """
        Apply a named lifecycle action.

        Args:
            project_id: Project ID
            action: "start" or "stop"

        Returns:
            The status written for the project

        Raises:
            InvalidActionError: For any other action, before touching the cluster
        """
        try:
            parsed = LifecycleAction(action)
        except ValueError:
            raise InvalidActionError(action) from None
        return await self.set_replicas(project_id, parsed.replicas)

    async def set_replicas(self, project_id: str, replicas: int) -> ProjectStatus:
        """
        Scale a project's deployment and record the resulting status.

        Args:
            project_id: Project ID
            replicas: Target replica count (0 stops the project)

        Returns:
            ``stopped`` for zero replicas, ``running`` otherwise

        Raises:
            UnavailableError: If the cluster is not connected
            NotFoundError: If the project has no deployment
        """
        if replicas < 0:
            raise ValueError(f"replicas must be >= 0, got {replicas}")
        self.gateway.require_available()

        await asyncio.to_thread(self._scale, project_id, replicas)

        status = ProjectStatus.STOPPED if replicas == 0 else ProjectStatus.RUNNING
        await self.store.update_status(project_id, status)
        return status

    def _scale(self, project_id: str, replicas: int) -> None:
        namespace = self.settings.namespace
        scale = self.gateway.get_deployment_scale(namespace, project_id)
        scale.spec.replicas = replicas
        self.gateway.replace_deployment_scale(namespace, project_id, scale)

        action = "stopped" if replicas == 0 else "started"
        logger.info(f"Project {project_id} {action} (replicas: {replicas})")

    async def delete(self, project_id: str) -> CleanupRun:
        """
        Tear down every cluster resource of a project.

        Cancels a pending build watcher first. Each resource is deleted
        independently; a failure on one does not stop the others.

        Args:
            project_id: Project ID

        Returns:
            CleanupRun with the completed steps

        Raises:
            UnavailableError: If the cluster is not connected
            CleanupError: If any step failed (all steps were still attempted)
        """
        if self.watchers:
            self.watchers.cancel(project_id)
        self.gateway.require_available()

        run = await asyncio.to_thread(self._delete_resources, project_id)
        run.raise_for_failures()
        logger.info(f"Deleted project resources for {project_id}")
        return run

    def _delete_resources(self, project_id: str) -> CleanupRun:
        namespace = self.settings.namespace
        gateway = self.gateway
        run = CleanupRun()

        run.step("ingress", gateway.delete_ingress, namespace, project_id)
        run.step("service", gateway.delete_service, namespace, project_id)
        run.step("deployment", gateway.delete_deployment, namespace, project_id)
        run.step("build job", gateway.delete_job, namespace, build_job_name(project_id))

        secrets = run.step(
            "list secrets", gateway.list_secrets, namespace, {"project-id": project_id}
        )
        for secret in secrets or []:
            name = secret.metadata.name
            run.step(f"secret {name}", gateway.delete_secret, namespace, name)

        return run
