"""Kubernetes cluster connection and the resource gateway used by Foundry."""

import base64
import logging
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client import (
    ApiClient,
    AppsV1Api,
    BatchV1Api,
    CoreV1Api,
    NetworkingV1Api,
    V1Deployment,
    V1Ingress,
    V1Job,
    V1Pod,
    V1Scale,
    V1Secret,
    V1Service,
)
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import ConflictError, NotFoundError, UnavailableError, UpstreamError
from .models import ClusterConfig
from .naming import label_selector

logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    """Transport errors, throttling and server errors are worth retrying."""
    if not isinstance(exc, UpstreamError):
        return False
    return exc.status is None or exc.status == 429 or exc.status >= 500


_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


class ClusterConnection:
    """
    API clients for the target cluster.

    Configuration is loaded from base64 kubeconfig data, a kubeconfig path,
    or the in-cluster service account (falling back to the local kubeconfig).
    """

    def __init__(self, cluster_config: Optional[ClusterConfig] = None):
        """
        Initialize cluster connection.

        Args:
            cluster_config: Cluster configuration (in-cluster config when omitted)

        Raises:
            ValueError: If no usable configuration could be loaded
        """
        self.config = cluster_config or ClusterConfig()
        self._temp_kubeconfig: Optional[Path] = None
        self._api_client: Optional[ApiClient] = None

        try:
            self._load_config()
            self._api_client = ApiClient()
        except Exception as e:
            self._remove_temp_kubeconfig()
            raise ValueError(f"Failed to initialize cluster connection: {e}") from e

        self.core_v1 = CoreV1Api(self._api_client)
        self.apps_v1 = AppsV1Api(self._api_client)
        self.batch_v1 = BatchV1Api(self._api_client)
        self.networking_v1 = NetworkingV1Api(self._api_client)

    def _load_config(self) -> None:
        context = self.config.context
        if self.config.kubeconfig_data:
            with tempfile.NamedTemporaryFile(mode="wb", delete=False) as f:
                f.write(base64.b64decode(self.config.kubeconfig_data))
                self._temp_kubeconfig = Path(f.name)
            config.load_kube_config(config_file=str(self._temp_kubeconfig), context=context)
        elif self.config.kubeconfig_path:
            config.load_kube_config(config_file=self.config.kubeconfig_path, context=context)
        else:
            try:
                config.load_incluster_config()
            except ConfigException:
                logger.info("In-cluster config failed, trying local kubeconfig...")
                config.load_kube_config(context=context)

    def _remove_temp_kubeconfig(self) -> None:
        if self._temp_kubeconfig and self._temp_kubeconfig.exists():
            self._temp_kubeconfig.unlink()
        self._temp_kubeconfig = None

    @property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            raise RuntimeError("Cluster connection is closed")
        return self._api_client

    def is_healthy(self) -> bool:
        """True if the API server answers a discovery request."""
        try:
            self.core_v1.get_api_resources()
            return True
        except (ApiException, urllib3.exceptions.HTTPError):
            return False

    def get_cluster_version(self) -> dict:
        """
        Get Kubernetes cluster version information.

        Raises:
            ApiException: If unable to get version
        """
        info = client.VersionApi(self.api_client).get_code()
        return {
            "major": info.major,
            "minor": info.minor,
            "git_version": info.git_version,
            "platform": info.platform,
        }

    def close(self) -> None:
        """Close the API client and remove any temporary kubeconfig."""
        if self._api_client is not None:
            self._api_client.close()
            self._api_client = None
        self._remove_temp_kubeconfig()


@contextmanager
def _translate(kind: str, name: str) -> Iterator[None]:
    """Map client exceptions onto the Foundry error taxonomy."""
    try:
        yield
    except ApiException as e:
        if e.status == 404:
            raise NotFoundError(kind, name) from e
        if e.status == 409:
            raise ConflictError(kind, name) from e
        raise UpstreamError(kind, name, e.status, e.reason) from e
    except urllib3.exceptions.HTTPError as e:
        raise UpstreamError(kind, name, reason=str(e)) from e


class ClusterGateway:
    """
    Thin capability wrapper over the cluster API.

    Exposes create/get/replace/delete for Jobs, Secrets, Deployments,
    Services and Ingresses, plus pod listing, logs and raw GETs. Every call
    raises ``UnavailableError`` when no connection was established,
    ``NotFoundError`` on 404, ``ConflictError`` on 409 and ``UpstreamError``
    otherwise. Upstream failures are retried before they surface.
    """

    def __init__(self, connection: Optional[ClusterConnection]):
        """
        Initialize gateway.

        Args:
            connection: Established cluster connection, or None when the
                cluster could not be reached at startup
        """
        self.connection = connection

    @classmethod
    def connect(cls, cluster_config: Optional[ClusterConfig] = None) -> "ClusterGateway":
        """
        Connect to the cluster, degrading to an unavailable gateway on failure.

        Args:
            cluster_config: Cluster configuration

        Returns:
            ClusterGateway (check ``available`` before use)
        """
        try:
            connection = ClusterConnection(cluster_config)
        except ValueError as e:
            logger.warning(f"Kubernetes unavailable, cluster operations disabled: {e}")
            return cls(None)
        logger.info("✓ Cluster connection initialized")
        return cls(connection)

    @property
    def available(self) -> bool:
        return self.connection is not None

    def require_available(self) -> ClusterConnection:
        """Return the connection or raise ``UnavailableError``."""
        if self.connection is None:
            raise UnavailableError()
        return self.connection

    def close(self) -> None:
        if self.connection:
            self.connection.close()

    # Jobs

    @_retry
    def create_job(self, namespace: str, body: V1Job) -> V1Job:
        conn = self.require_available()
        with _translate("Job", body.metadata.name):
            return conn.batch_v1.create_namespaced_job(namespace=namespace, body=body)

    @_retry
    def get_job(self, namespace: str, name: str) -> V1Job:
        conn = self.require_available()
        with _translate("Job", name):
            return conn.batch_v1.read_namespaced_job(name, namespace)

    @_retry
    def delete_job(self, namespace: str, name: str) -> None:
        conn = self.require_available()
        with _translate("Job", name):
            conn.batch_v1.delete_namespaced_job(
                name,
                namespace,
                propagation_policy="Background",
            )

    # Secrets

    @_retry
    def create_secret(self, namespace: str, body: V1Secret) -> V1Secret:
        conn = self.require_available()
        with _translate("Secret", body.metadata.name):
            return conn.core_v1.create_namespaced_secret(namespace=namespace, body=body)

    @_retry
    def get_secret(self, namespace: str, name: str) -> V1Secret:
        conn = self.require_available()
        with _translate("Secret", name):
            return conn.core_v1.read_namespaced_secret(name, namespace)

    @_retry
    def replace_secret(self, namespace: str, name: str, body: V1Secret) -> V1Secret:
        conn = self.require_available()
        with _translate("Secret", name):
            return conn.core_v1.replace_namespaced_secret(
                name=name, namespace=namespace, body=body
            )

    @_retry
    def delete_secret(self, namespace: str, name: str) -> None:
        conn = self.require_available()
        with _translate("Secret", name):
            conn.core_v1.delete_namespaced_secret(
                name, namespace, propagation_policy="Background"
            )

    @_retry
    def list_secrets(self, namespace: str, labels: dict[str, str]) -> list[V1Secret]:
        conn = self.require_available()
        with _translate("Secret", label_selector(labels)):
            result = conn.core_v1.list_namespaced_secret(
                namespace=namespace,
                label_selector=label_selector(labels),
            )
        return result.items

    # Deployments

    @_retry
    def create_deployment(self, namespace: str, body: V1Deployment) -> V1Deployment:
        conn = self.require_available()
        with _translate("Deployment", body.metadata.name):
            return conn.apps_v1.create_namespaced_deployment(namespace=namespace, body=body)

    @_retry
    def get_deployment(self, namespace: str, name: str) -> V1Deployment:
        conn = self.require_available()
        with _translate("Deployment", name):
            return conn.apps_v1.read_namespaced_deployment(name, namespace)

    @_retry
    def replace_deployment(
        self, namespace: str, name: str, body: V1Deployment
    ) -> V1Deployment:
        conn = self.require_available()
        with _translate("Deployment", name):
            return conn.apps_v1.replace_namespaced_deployment(
                name=name, namespace=namespace, body=body
            )

    @_retry
    def delete_deployment(self, namespace: str, name: str) -> None:
        conn = self.require_available()
        with _translate("Deployment", name):
            conn.apps_v1.delete_namespaced_deployment(
                name, namespace, propagation_policy="Background"
            )

    @_retry
    def get_deployment_scale(self, namespace: str, name: str) -> V1Scale:
        conn = self.require_available()
        with _translate("Deployment", name):
            return conn.apps_v1.read_namespaced_deployment_scale(name, namespace)

    @_retry
    def replace_deployment_scale(
        self, namespace: str, name: str, body: V1Scale
    ) -> V1Scale:
        conn = self.require_available()
        with _translate("Deployment", name):
            return conn.apps_v1.replace_namespaced_deployment_scale(
                name=name, namespace=namespace, body=body
            )

    # Services

    @_retry
    def create_service(self, namespace: str, body: V1Service) -> V1Service:
        conn = self.require_available()
        with _translate("Service", body.metadata.name):
            return conn.core_v1.create_namespaced_service(namespace=namespace, body=body)

    @_retry
    def get_service(self, namespace: str, name: str) -> V1Service:
        conn = self.require_available()
        with _translate("Service", name):
            return conn.core_v1.read_namespaced_service(name, namespace)

    @_retry
    def replace_service(self, namespace: str, name: str, body: V1Service) -> V1Service:
        conn = self.require_available()
        with _translate("Service", name):
            return conn.core_v1.replace_namespaced_service(
                name=name, namespace=namespace, body=body
            )

    @_retry
    def delete_service(self, namespace: str, name: str) -> None:
        conn = self.require_available()
        with _translate("Service", name):
            conn.core_v1.delete_namespaced_service(
                name, namespace, propagation_policy="Background"
            )

    # Ingresses

    @_retry
    def create_ingress(self, namespace: str, body: V1Ingress) -> V1Ingress:
        conn = self.require_available()
        with _translate("Ingress", body.metadata.name):
            return conn.networking_v1.create_namespaced_ingress(
                namespace=namespace, body=body
            )

    @_retry
    def get_ingress(self, namespace: str, name: str) -> V1Ingress:
        conn = self.require_available()
        with _translate("Ingress", name):
            return conn.networking_v1.read_namespaced_ingress(name, namespace)

    @_retry
    def replace_ingress(self, namespace: str, name: str, body: V1Ingress) -> V1Ingress:
        conn = self.require_available()
        with _translate("Ingress", name):
            return conn.networking_v1.replace_namespaced_ingress(
                name=name, namespace=namespace, body=body
            )

    @_retry
    def delete_ingress(self, namespace: str, name: str) -> None:
        conn = self.require_available()
        with _translate("Ingress", name):
            conn.networking_v1.delete_namespaced_ingress(
                name, namespace, propagation_policy="Background"
            )

    # Pods

    @_retry
    def list_pods(self, namespace: str, labels: dict[str, str]) -> list[V1Pod]:
        conn = self.require_available()
        with _translate("Pod", label_selector(labels)):
            result = conn.core_v1.list_namespaced_pod(
                namespace=namespace,
                label_selector=label_selector(labels),
            )
        return result.items

    @_retry
    def read_pod_log(self, namespace: str, name: str, tail_lines: int) -> str:
        conn = self.require_available()
        with _translate("Pod", name):
            return conn.core_v1.read_namespaced_pod_log(
                name=name,
                namespace=namespace,
                tail_lines=tail_lines,
            )

    def raw_get(self, path: str) -> Any:
        """
        Issue a GET against an arbitrary API path and decode the JSON body.

        Not retried: callers of raw paths (metrics) treat failure as "no data".

        Args:
            path: Absolute API path, e.g. /apis/metrics.k8s.io/v1beta1/...

        Returns:
            Decoded JSON body
        """
        conn = self.require_available()
        with _translate("Path", path):
            return conn.api_client.call_api(
                path,
                "GET",
                header_params={"Accept": "application/json"},
                response_type="object",
                auth_settings=["BearerToken"],
                _return_http_data_only=True,
            )
