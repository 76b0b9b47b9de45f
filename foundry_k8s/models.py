"""Project, configuration and request models for Foundry."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectStatus(str, Enum):
    """Project lifecycle status."""

    BUILDING = "building"
    DEPLOYING = "deploying"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class LifecycleAction(str, Enum):
    """Operator actions accepted on a deployed project."""

    START = "start"
    STOP = "stop"

    @property
    def replicas(self) -> int:
        return 1 if self is LifecycleAction.START else 0


class ClusterConfig(BaseModel):
    """Cluster connection configuration."""

    kubeconfig_path: Optional[str] = None
    kubeconfig_data: Optional[str] = None  # Base64 encoded kubeconfig
    context: Optional[str] = None


class ConfigEntry(BaseModel):
    """One key/value item of project or environment configuration."""

    key: str
    value: str = ""


class Project(BaseModel):
    """Hosted project record."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    repo_url: str
    branch: str = "main"
    port: int = 80
    status: ProjectStatus = ProjectStatus.BUILDING
    deploy_url: str = ""
    owner_id: str
    environment_ids: list[str] = Field(default_factory=list)
    view_count: int = 0
    like_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Environment(BaseModel):
    """Reusable, owner-scoped group of configuration entries."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    owner_id: str
    variables: list[ConfigEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DeployRequest(BaseModel):
    """Desired state of a project's deployed resources."""

    project_id: str
    owner_id: str
    name: str
    config: dict[str, str] = Field(default_factory=dict)
    target_port: int = 80
    environment_ids: list[str] = Field(default_factory=list)
    replicas: int = 1


class BuildRequest(BaseModel):
    """Everything needed to build a project and deploy the result."""

    project_id: str
    owner_id: str
    name: str
    repo_url: str
    branch: str = "main"
    credential: str = Field(default="", repr=False)
    config: dict[str, str] = Field(default_factory=dict)
    port: int = 80
    environment_ids: list[str] = Field(default_factory=list)

    def deploy_request(self) -> DeployRequest:
        """Deploy request issued once the image is built."""
        return DeployRequest(
            project_id=self.project_id,
            owner_id=self.owner_id,
            name=self.name,
            config=self.config,
            target_port=self.port,
            environment_ids=self.environment_ids,
        )


class PodStats(BaseModel):
    """Point-in-time resource usage of a project's pod."""

    cpu: str = "0"
    memory: str = "0"
