"""Read-only views of a project's pods: logs and resource usage."""

import logging

from .cluster import ClusterGateway
from .config import Settings
from .errors import FoundryError, NotFoundError, UnavailableError, UpstreamError
from .models import PodStats
from .naming import APP_LABEL

logger = logging.getLogger(__name__)

NO_PODS_MESSAGE = "No pods found (deployment might be starting or stopped)"
CONTAINER_STARTING_MESSAGE = "Container is not running yet (pod might be starting)"


class PodInspector:
    """Logs and metrics for project pods."""

    def __init__(self, gateway: ClusterGateway, settings: Settings):
        self.gateway = gateway
        self.settings = settings

    def _project_pods(self, project_id: str):
        return self.gateway.list_pods(
            self.settings.namespace, {"app": APP_LABEL, "project-id": project_id}
        )

    def get_logs(self, project_id: str) -> str:
        """
        Get the tail of the first pod's logs.

        Args:
            project_id: Project ID

        Returns:
            Last ``log_tail_lines`` lines, or a fixed message when no pod
            exists or its container has not started

        Raises:
            UnavailableError: If the cluster is not connected
            UpstreamError: If pods or logs could not be read
        """
        self.gateway.require_available()
        pods = self._project_pods(project_id)
        if not pods:
            return NO_PODS_MESSAGE

        pod_name = pods[0].metadata.name
        try:
            return self.gateway.read_pod_log(
                self.settings.namespace, pod_name, self.settings.log_tail_lines
            )
        except NotFoundError:
            return NO_PODS_MESSAGE
        except UpstreamError as e:
            # The API answers 400 while the container is still being created.
            if e.status == 400:
                logger.debug(f"Logs not available yet for pod {pod_name}: {e}")
                return CONTAINER_STARTING_MESSAGE
            raise

    def get_stats(self, project_id: str) -> PodStats:
        """
        Get CPU and memory usage of the first pod.

        Usage is advisory: missing pods, a missing metrics server or an
        unreadable response all yield zero usage.

        Raises:
            UnavailableError: If the cluster is not connected
        """
        self.gateway.require_available()
        try:
            pods = self._project_pods(project_id)
            if not pods:
                return PodStats()

            path = (
                f"{self.settings.metrics_root.rstrip('/')}/namespaces/"
                f"{self.settings.namespace}/pods/{pods[0].metadata.name}"
            )
            data = self.gateway.raw_get(path)
        except UnavailableError:
            raise
        except FoundryError as e:
            logger.debug(f"Metrics unavailable for {project_id}: {e}")
            return PodStats()

        return _usage_from_metrics(data)


def _usage_from_metrics(data) -> PodStats:
    if not isinstance(data, dict):
        return PodStats()
    containers = data.get("containers") or []
    if not containers or not isinstance(containers[0], dict):
        return PodStats()
    usage = containers[0].get("usage") or {}
    return PodStats(
        cpu=str(usage.get("cpu") or "0"),
        memory=str(usage.get("memory") or "0"),
    )
