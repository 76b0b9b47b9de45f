"""Persistence interfaces consumed by the control plane."""

import logging
from typing import Optional, Protocol

from .configuration import ValueCipher, normalize_entries, open_entries, seal_entries
from .errors import NotFoundError
from .models import ConfigEntry, Environment, Project, ProjectStatus, utcnow

logger = logging.getLogger(__name__)


class StatusStore(Protocol):
    """Persists project status and deploy URL."""

    async def update_status(
        self,
        project_id: str,
        status: ProjectStatus,
        deploy_url: Optional[str] = None,
    ) -> None:
        """Partial update; an empty ``deploy_url`` leaves the stored one alone."""
        ...


class ProjectStore(StatusStore, Protocol):
    """Project, configuration and environment-group records."""

    async def create_project(self, project: Project, config: list[ConfigEntry]) -> Project: ...

    async def get_project(self, project_id: str) -> Project: ...

    async def save_project(self, project: Project) -> Project: ...

    async def delete_project(self, project_id: str) -> None: ...

    async def get_config(self, project_id: str) -> list[ConfigEntry]: ...

    async def replace_config(self, project_id: str, config: list[ConfigEntry]) -> None: ...

    async def create_environment(self, environment: Environment) -> Environment: ...

    async def get_environment(self, environment_id: str) -> Environment: ...

    async def save_environment(self, environment: Environment) -> Environment: ...

    async def delete_environment(self, environment_id: str) -> None: ...


class InMemoryProjectStore:
    """
    Process-local ``ProjectStore``.

    Configuration values pass through ``cipher`` on the way in and out, so
    what is held in memory is what a database would hold. Every status
    write is appended to ``status_history``.
    """

    def __init__(self, cipher: Optional[ValueCipher] = None):
        self.cipher = cipher
        self._projects: dict[str, Project] = {}
        self._config: dict[str, list[ConfigEntry]] = {}
        self._environments: dict[str, Environment] = {}
        self.status_history: dict[str, list[ProjectStatus]] = {}

    def _seal(self, entries: list[ConfigEntry]) -> list[ConfigEntry]:
        entries = normalize_entries(entries)
        return seal_entries(entries, self.cipher) if self.cipher else entries

    def _open(self, entries: list[ConfigEntry]) -> list[ConfigEntry]:
        return open_entries(entries, self.cipher) if self.cipher else list(entries)

    async def update_status(
        self,
        project_id: str,
        status: ProjectStatus,
        deploy_url: Optional[str] = None,
    ) -> None:
        self.status_history.setdefault(project_id, []).append(status)
        project = self._projects.get(project_id)
        if project is None:
            # Deleted while a build was in flight.
            logger.debug(f"Status update for unknown project {project_id} dropped")
            return
        project.status = status
        if deploy_url:
            project.deploy_url = deploy_url
        project.updated_at = utcnow()

    async def create_project(self, project: Project, config: list[ConfigEntry]) -> Project:
        self._projects[project.id] = project
        self._config[project.id] = self._seal(config)
        self.status_history.setdefault(project.id, []).append(project.status)
        return project

    async def get_project(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    async def save_project(self, project: Project) -> Project:
        project.updated_at = utcnow()
        self._projects[project.id] = project
        return project

    async def delete_project(self, project_id: str) -> None:
        self._projects.pop(project_id, None)
        self._config.pop(project_id, None)

    async def get_config(self, project_id: str) -> list[ConfigEntry]:
        return self._open(self._config.get(project_id, []))

    async def replace_config(self, project_id: str, config: list[ConfigEntry]) -> None:
        self._config[project_id] = self._seal(config)

    def stored_config(self, project_id: str) -> list[ConfigEntry]:
        """Configuration exactly as held at rest."""
        return list(self._config.get(project_id, []))

    async def create_environment(self, environment: Environment) -> Environment:
        return await self.save_environment(environment)

    async def get_environment(self, environment_id: str) -> Environment:
        environment = self._environments.get(environment_id)
        if environment is None:
            raise NotFoundError("Environment", environment_id)
        return environment.model_copy(
            update={"variables": self._open(environment.variables)}
        )

    async def save_environment(self, environment: Environment) -> Environment:
        environment.updated_at = utcnow()
        self._environments[environment.id] = environment.model_copy(
            update={"variables": self._seal(environment.variables)}
        )
        return await self.get_environment(environment.id)

    async def delete_environment(self, environment_id: str) -> None:
        self._environments.pop(environment_id, None)
        for project in self._projects.values():
            if environment_id in project.environment_ids:
                project.environment_ids.remove(environment_id)
