"""Control plane facade: wires the components and owns project workflows."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .cluster import ClusterGateway
from .config import Settings, get_settings
from .configuration import entries_to_map
from .deployments import DeployReconciler
from .errors import CleanupError, DeploymentError, FoundryError, NotFoundError, UnavailableError
from .jobs import BuildOrchestrator
from .lifecycle import LifecycleController
from .models import (
    BuildRequest,
    ClusterConfig,
    ConfigEntry,
    DeployRequest,
    Environment,
    PodStats,
    Project,
    ProjectStatus,
)
from .pods import PodInspector
from .secrets import SecretLifecycleManager
from .store import InMemoryProjectStore, ProjectStore
from .watch import WatcherRegistry

logger = logging.getLogger(__name__)


@dataclass
class DeletionResult:
    """Outcome of deleting a project."""

    project_id: str
    cleanup_error: Optional[CleanupError] = None

    @property
    def clean(self) -> bool:
        return self.cleanup_error is None


class ControlPlane:
    """
    Entry point for request handlers.

    Every component receives the same gateway, store and watcher registry,
    so tests can swap any of them for doubles.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: ClusterGateway,
        store: ProjectStore,
        watchers: Optional[WatcherRegistry] = None,
    ):
        """
        Initialize control plane.

        Args:
            settings: Application settings
            gateway: Cluster gateway
            store: Project store
            watchers: Build watcher registry
        """
        self.settings = settings
        self.gateway = gateway
        self.store = store
        self.watchers = watchers or WatcherRegistry()

        self.secrets = SecretLifecycleManager(gateway)
        self.reconciler = DeployReconciler(gateway, settings, self.secrets)
        self.builds = BuildOrchestrator(
            gateway, self.reconciler, store, settings, self.watchers
        )
        self.lifecycle = LifecycleController(gateway, store, settings, self.watchers)
        self.pods = PodInspector(gateway, settings)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[ProjectStore] = None,
    ) -> "ControlPlane":
        """Connect to the configured cluster and build a control plane."""
        settings = settings or get_settings()
        gateway = ClusterGateway.connect(
            ClusterConfig(
                kubeconfig_path=settings.kubeconfig_path,
                context=settings.kube_context,
            )
        )
        return cls(settings, gateway, store or InMemoryProjectStore())

    async def shutdown(self) -> None:
        """Stop every build watcher and close the cluster connection."""
        await self.watchers.shutdown()
        self.gateway.close()
        logger.info("Control plane stopped")

    async def _owned_project(self, project_id: str, owner_id: str) -> Project:
        project = await self.store.get_project(project_id)
        if project.owner_id != owner_id:
            raise NotFoundError("Project", project_id)
        return project

    async def _owned_environment(self, environment_id: str, owner_id: str) -> Environment:
        environment = await self.store.get_environment(environment_id)
        if environment.owner_id != owner_id:
            raise NotFoundError("Environment", environment_id)
        return environment

    # Projects

    async def submit_project(
        self,
        owner_id: str,
        name: str,
        repo_url: str,
        credential: str,
        branch: str = "",
        port: int = 0,
        config: Optional[list[ConfigEntry]] = None,
        environment_ids: Optional[list[str]] = None,
    ) -> Project:
        """
        Create a project and start its first build.

        Args:
            owner_id: Owner user ID
            name: Project name
            repo_url: HTTPS URL of the source repository
            credential: Short-lived token the builder clones with
            branch: Branch to build (defaults to main)
            port: Container port (defaults to 80)
            config: Configuration entries
            environment_ids: Environment groups to attach

        Returns:
            The created project, status ``building``

        Raises:
            NotFoundError: If an environment group is not the owner's
            UnavailableError: If the cluster is not connected (project kept as ``error``)
        """
        environment_ids = environment_ids or []
        for environment_id in environment_ids:
            await self._owned_environment(environment_id, owner_id)

        project = Project(
            name=name,
            repo_url=repo_url,
            branch=branch or "main",
            port=port or 80,
            owner_id=owner_id,
            environment_ids=environment_ids,
            status=ProjectStatus.BUILDING,
        )
        await self.store.create_project(project, config or [])
        await self._trigger(project, credential)
        return project

    async def rebuild_project(self, project_id: str, owner_id: str, credential: str) -> Project:
        """Run the build pipeline again for an existing project."""
        project = await self._owned_project(project_id, owner_id)
        await self._trigger(project, credential)
        return project

    async def _trigger(self, project: Project, credential: str) -> None:
        request = BuildRequest(
            project_id=project.id,
            owner_id=project.owner_id,
            name=project.name,
            repo_url=project.repo_url,
            branch=project.branch,
            credential=credential,
            config=entries_to_map(await self.store.get_config(project.id)),
            port=project.port,
            environment_ids=project.environment_ids,
        )
        try:
            await self.builds.trigger_build(request)
        except FoundryError as e:
            logger.error(f"Failed to trigger build for {project.id}: {e}")
            await self.store.update_status(project.id, ProjectStatus.ERROR)
            raise

    async def apply_action(self, project_id: str, owner_id: str, action: str) -> ProjectStatus:
        """Start or stop a project."""
        await self._owned_project(project_id, owner_id)
        return await self.lifecycle.apply_action(project_id, action)

    async def update_configuration(
        self,
        project_id: str,
        owner_id: str,
        port: Optional[int] = None,
        config: Optional[list[ConfigEntry]] = None,
    ) -> Optional[str]:
        """
        Change a project's port and/or replace its configuration.

        A running or stopped project is redeployed with the new state and
        keeps its replica count and status. While a build is in flight its
        watcher is handed the new state instead. Projects in any other state,
        or with no cluster connection, only have the new state stored.

        Args:
            project_id: Project ID
            owner_id: Owner user ID
            port: New container port
            config: Full replacement set of configuration entries

        Returns:
            The project URL if a redeploy happened, otherwise None

        Raises:
            DeploymentError: If the redeploy failed (project marked ``error``)
        """
        project = await self._owned_project(project_id, owner_id)
        changed = False

        if port and port != project.port:
            project.port = port
            await self.store.save_project(project)
            changed = True

        if config is not None:
            await self.store.replace_config(project_id, config)
            changed = True

        if not changed:
            return None

        values = entries_to_map(await self.store.get_config(project_id))
        watcher = self.watchers.get(project_id)
        if watcher is not None:
            watcher.request = watcher.request.model_copy(
                update={"config": values, "port": project.port}
            )
            logger.info(f"Build in progress for {project_id}; new config applies on deploy")
            return None

        if project.status not in (ProjectStatus.RUNNING, ProjectStatus.STOPPED):
            logger.info(
                f"Project {project_id} is {project.status.value}; new config applies on next build"
            )
            return None
        if not self.gateway.available:
            logger.warning(f"Kubernetes unavailable, skipped redeploy for {project_id}")
            return None

        request = DeployRequest(
            project_id=project.id,
            owner_id=project.owner_id,
            name=project.name,
            config=values,
            target_port=project.port,
            environment_ids=project.environment_ids,
            replicas=0 if project.status is ProjectStatus.STOPPED else 1,
        )
        try:
            url = await asyncio.to_thread(self.reconciler.deploy, request)
        except DeploymentError:
            await self.store.update_status(project_id, ProjectStatus.ERROR)
            raise

        # running and stopped only change through lifecycle actions.
        return url

    async def delete_project(self, project_id: str, owner_id: str) -> DeletionResult:
        """
        Delete a project's cluster resources and its record.

        The record is removed even when teardown fails, so the owner is never
        left with a project they cannot delete.
        """
        await self._owned_project(project_id, owner_id)
        result = DeletionResult(project_id=project_id)

        try:
            await self.lifecycle.delete(project_id)
        except CleanupError as e:
            logger.error(f"Failed to delete K8s resources for {project_id}: {e}")
            result.cleanup_error = e
        except UnavailableError:
            logger.warning(f"Kubernetes unavailable, skipped resource cleanup for {project_id}")

        await self.store.delete_project(project_id)
        return result

    async def get_logs(self, project_id: str, owner_id: str) -> str:
        await self._owned_project(project_id, owner_id)
        return await asyncio.to_thread(self.pods.get_logs, project_id)

    async def get_stats(self, project_id: str, owner_id: str) -> PodStats:
        await self._owned_project(project_id, owner_id)
        return await asyncio.to_thread(self.pods.get_stats, project_id)

    # Environment groups

    async def create_environment(
        self, owner_id: str, name: str, variables: list[ConfigEntry]
    ) -> Environment:
        """
        Create a reusable environment group and its secret.

        The secret is skipped when the group has no variables or the
        cluster is not connected.
        """
        environment = await self.store.create_environment(
            Environment(name=name, owner_id=owner_id, variables=variables)
        )
        values = entries_to_map(environment.variables)

        if not values:
            return environment
        if not self.gateway.available:
            logger.warning(
                f"Kubernetes client not initialized, skipping secret creation for env {environment.id}"
            )
            return environment

        await asyncio.to_thread(
            self.secrets.upsert_environment_secret,
            self.settings.namespace,
            environment.id,
            owner_id,
            values,
        )
        return environment

    async def update_environment(
        self,
        environment_id: str,
        owner_id: str,
        variables: list[ConfigEntry],
        name: Optional[str] = None,
    ) -> Environment:
        """Replace an environment group's variables and its secret."""
        environment = await self._owned_environment(environment_id, owner_id)
        environment.variables = variables
        if name:
            environment.name = name
        environment = await self.store.save_environment(environment)

        await asyncio.to_thread(
            self.secrets.upsert_environment_secret,
            self.settings.namespace,
            environment.id,
            owner_id,
            entries_to_map(environment.variables),
        )
        return environment

    async def delete_environment(self, environment_id: str, owner_id: str) -> None:
        """Delete an environment group; its secret is removed best-effort."""
        await self._owned_environment(environment_id, owner_id)
        await self.store.delete_environment(environment_id)

        if not self.gateway.available:
            return
        try:
            await asyncio.to_thread(
                self.secrets.delete_environment_secret,
                self.settings.namespace,
                environment_id,
            )
        except FoundryError as e:
            logger.error(f"Failed to delete K8s secret for env {environment_id}: {e}")
