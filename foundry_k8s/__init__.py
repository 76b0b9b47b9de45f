"""Foundry Kubernetes control plane - build, deploy and lifecycle of hosted projects."""

from .cluster import ClusterConnection, ClusterGateway
from .config import Settings, get_settings
from .configuration import ValueCipher
from .controlplane import ControlPlane, DeletionResult
from .deployments import DeployReconciler
from .errors import (
    BuildTimeoutError,
    CleanupError,
    ConflictError,
    DeploymentError,
    FoundryError,
    InvalidActionError,
    NotFoundError,
    UnavailableError,
    UpstreamError,
)
from .jobs import BuildOrchestrator
from .lifecycle import LifecycleController
from .models import (
    BuildRequest,
    ClusterConfig,
    ConfigEntry,
    DeployRequest,
    Environment,
    LifecycleAction,
    PodStats,
    Project,
    ProjectStatus,
)
from .pods import CONTAINER_STARTING_MESSAGE, NO_PODS_MESSAGE, PodInspector
from .reconcile import CleanupRun, ResourceOps, reconcile_resource
from .secrets import SecretLifecycleManager
from .store import InMemoryProjectStore, ProjectStore, StatusStore
from .watch import BuildWatcher, WatcherRegistry, WatchState

__version__ = "0.1.0"

__all__ = [
    # Cluster access
    "ClusterConnection",
    "ClusterGateway",
    # Components
    "SecretLifecycleManager",
    "DeployReconciler",
    "BuildOrchestrator",
    "BuildWatcher",
    "WatcherRegistry",
    "WatchState",
    "LifecycleController",
    "PodInspector",
    "NO_PODS_MESSAGE",
    "CONTAINER_STARTING_MESSAGE",
    "ControlPlane",
    "DeletionResult",
    # Reconciliation helpers
    "ResourceOps",
    "reconcile_resource",
    "CleanupRun",
    # Persistence
    "StatusStore",
    "ProjectStore",
    "InMemoryProjectStore",
    "ValueCipher",
    # Configuration
    "Settings",
    "get_settings",
    # Models
    "BuildRequest",
    "ClusterConfig",
    "ConfigEntry",
    "DeployRequest",
    "Environment",
    "LifecycleAction",
    "PodStats",
    "Project",
    "ProjectStatus",
    # Errors
    "FoundryError",
    "UnavailableError",
    "NotFoundError",
    "ConflictError",
    "UpstreamError",
    "BuildTimeoutError",
    "InvalidActionError",
    "DeploymentError",
    "CleanupError",
]
