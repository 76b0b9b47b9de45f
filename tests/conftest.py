"""Pytest configuration and fixtures for Foundry tests."""

import copy
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client import V1JobStatus, V1ObjectMeta, V1Pod, V1Scale, V1ScaleSpec

from foundry_k8s import ClusterGateway, InMemoryProjectStore, Settings
from foundry_k8s.errors import ConflictError, FoundryError, NotFoundError
from foundry_k8s.naming import label_selector


class FakeClusterGateway(ClusterGateway):
    """
    In-memory cluster with API-server write semantics.

    Create fails with ConflictError when the object exists; replace fails
    with ConflictError unless the body carries the live resourceVersion.
    ``failures`` maps a method name to the exception it should raise.
    """

    def __init__(self, available: bool = True):
        super().__init__(MagicMock() if available else None)
        self.objects: dict[tuple[str, str, str], Any] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, Exception] = {}
        self.job_statuses: list[V1JobStatus] = []
        self.pods: list[V1Pod] = []
        self.pod_logs: dict[str, str] = {}
        self.raw_responses: dict[str, Any] = {}
        self._version = 0

    def _call(self, method: str, name: str) -> None:
        self.require_available()
        self.calls.append((method, name))
        if method in self.failures:
            raise self.failures[method]

    def _create(self, kind: str, namespace: str, body: Any) -> Any:
        key = (kind, namespace, body.metadata.name)
        if key in self.objects:
            raise ConflictError(kind, body.metadata.name)
        self._version += 1
        stored = copy.deepcopy(body)
        stored.metadata.resource_version = str(self._version)
        self.objects[key] = stored
        return copy.deepcopy(stored)

    def _get(self, kind: str, namespace: str, name: str) -> Any:
        try:
            return copy.deepcopy(self.objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(kind, name) from None

    def _replace(self, kind: str, namespace: str, name: str, body: Any) -> Any:
        live = self._get(kind, namespace, name)
        if body.metadata.resource_version != live.metadata.resource_version:
            raise ConflictError(kind, name)
        self._version += 1
        stored = copy.deepcopy(body)
        stored.metadata.resource_version = str(self._version)
        self.objects[(kind, namespace, name)] = stored
        return copy.deepcopy(stored)

    def _delete(self, kind: str, namespace: str, name: str) -> None:
        if self.objects.pop((kind, namespace, name), None) is None:
            raise NotFoundError(kind, name)

    def get(self, kind: str, name: str, namespace: str = "apps") -> Optional[Any]:
        return self.objects.get((kind, namespace, name))

    def names(self, kind: str) -> list[str]:
        return sorted(name for k, _, name in self.objects if k == kind)

    def call_names(self) -> list[str]:
        return [method for method, _ in self.calls]

    # Jobs

    def create_job(self, namespace, body):
        self._call("create_job", body.metadata.name)
        return self._create("Job", namespace, body)

    def get_job(self, namespace, name):
        self._call("get_job", name)
        job = self._get("Job", namespace, name)
        if self.job_statuses:
            status = self.job_statuses.pop(0) if len(self.job_statuses) > 1 else self.job_statuses[0]
            job.status = status
        return job

    def delete_job(self, namespace, name):
        self._call("delete_job", name)
        self._delete("Job", namespace, name)

    # Secrets

    def create_secret(self, namespace, body):
        self._call("create_secret", body.metadata.name)
        return self._create("Secret", namespace, body)

    def get_secret(self, namespace, name):
        self._call("get_secret", name)
        return self._get("Secret", namespace, name)

    def replace_secret(self, namespace, name, body):
        self._call("replace_secret", name)
        return self._replace("Secret", namespace, name, body)

    def delete_secret(self, namespace, name):
        self._call("delete_secret", name)
        self._delete("Secret", namespace, name)

    def list_secrets(self, namespace, labels):
        self._call("list_secrets", label_selector(labels))
        return [
            copy.deepcopy(obj)
            for (kind, ns, _), obj in self.objects.items()
            if kind == "Secret"
            and ns == namespace
            and all((obj.metadata.labels or {}).get(k) == v for k, v in labels.items())
        ]

    # Deployments

    def create_deployment(self, namespace, body):
        self._call("create_deployment", body.metadata.name)
        return self._create("Deployment", namespace, body)

    def get_deployment(self, namespace, name):
        self._call("get_deployment", name)
        return self._get("Deployment", namespace, name)

    def replace_deployment(self, namespace, name, body):
        self._call("replace_deployment", name)
        return self._replace("Deployment", namespace, name, body)

    def delete_deployment(self, namespace, name):
        self._call("delete_deployment", name)
        self._delete("Deployment", namespace, name)

    def get_deployment_scale(self, namespace, name):
        self._call("get_deployment_scale", name)
        deployment = self._get("Deployment", namespace, name)
        return V1Scale(
            metadata=V1ObjectMeta(
                name=name, resource_version=deployment.metadata.resource_version
            ),
            spec=V1ScaleSpec(replicas=deployment.spec.replicas),
        )

    def replace_deployment_scale(self, namespace, name, body):
        self._call("replace_deployment_scale", name)
        deployment = self._get("Deployment", namespace, name)
        deployment.spec.replicas = body.spec.replicas
        self._replace("Deployment", namespace, name, deployment)
        return body

    # Services

    def create_service(self, namespace, body):
        self._call("create_service", body.metadata.name)
        created = self._create("Service", namespace, body)
        if created.spec.cluster_ip is None:
            self._version += 1
            stored = self.objects[("Service", namespace, body.metadata.name)]
            stored.spec.cluster_ip = f"10.0.0.{self._version}"
            created.spec.cluster_ip = stored.spec.cluster_ip
        return created

    def get_service(self, namespace, name):
        self._call("get_service", name)
        return self._get("Service", namespace, name)

    def replace_service(self, namespace, name, body):
        self._call("replace_service", name)
        live = self._get("Service", namespace, name)
        if body.spec.cluster_ip != live.spec.cluster_ip:
            raise FoundryError("spec.clusterIP: field is immutable")
        return self._replace("Service", namespace, name, body)

    def delete_service(self, namespace, name):
        self._call("delete_service", name)
        self._delete("Service", namespace, name)

    # Ingresses

    def create_ingress(self, namespace, body):
        self._call("create_ingress", body.metadata.name)
        return self._create("Ingress", namespace, body)

    def get_ingress(self, namespace, name):
        self._call("get_ingress", name)
        return self._get("Ingress", namespace, name)

    def replace_ingress(self, namespace, name, body):
        self._call("replace_ingress", name)
        return self._replace("Ingress", namespace, name, body)

    def delete_ingress(self, namespace, name):
        self._call("delete_ingress", name)
        self._delete("Ingress", namespace, name)

    # Pods

    def list_pods(self, namespace, labels):
        self._call("list_pods", label_selector(labels))
        return [
            pod
            for pod in self.pods
            if all((pod.metadata.labels or {}).get(k) == v for k, v in labels.items())
        ]

    def read_pod_log(self, namespace, name, tail_lines):
        self._call("read_pod_log", name)
        return self.pod_logs.get(name, "")

    def raw_get(self, path):
        self._call("raw_get", path)
        if path not in self.raw_responses:
            raise NotFoundError("Path", path)
        return self.raw_responses[path]


class FakeCipher:
    """Reversible stand-in for the at-rest cipher."""

    prefix = "enc:"

    def encrypt(self, plaintext: str) -> str:
        return self.prefix + plaintext[::-1]

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext.startswith(self.prefix):
            raise ValueError("not encrypted")
        return ciphertext[len(self.prefix):][::-1]


@pytest.fixture
def settings():
    """Settings with fast build polling."""
    return Settings(
        _env_file=None,
        platform_domain="example.com",
        container_registry="registry.example.com/foundry",
        build_poll_interval_seconds=0.01,
        build_timeout_seconds=5,
    )


@pytest.fixture
def gateway():
    """In-memory cluster gateway."""
    return FakeClusterGateway()


@pytest.fixture
def unavailable_gateway():
    """Gateway with no cluster connection."""
    return FakeClusterGateway(available=False)


@pytest.fixture
def cipher():
    return FakeCipher()


@pytest.fixture
def store(cipher):
    """In-memory project store with a reversible cipher."""
    return InMemoryProjectStore(cipher=cipher)


@pytest.fixture
def mock_cluster_connection():
    """Mock cluster connection for testing."""
    mock_conn = MagicMock()
    mock_conn.core_v1 = MagicMock(spec=client.CoreV1Api)
    mock_conn.apps_v1 = MagicMock(spec=client.AppsV1Api)
    mock_conn.batch_v1 = MagicMock(spec=client.BatchV1Api)
    mock_conn.networking_v1 = MagicMock(spec=client.NetworkingV1Api)
    mock_conn.api_client = MagicMock(spec=client.ApiClient)
    return mock_conn


@pytest.fixture
def no_retry_wait(monkeypatch):
    """Make tenacity's waits instantaneous."""
    monkeypatch.setattr("tenacity.nap.time.sleep", lambda seconds: None)
