"""Deploy reconciliation: Secret, Deployment, Service and Ingress per project."""

import logging
from typing import Optional

from kubernetes.client import (
    V1Container,
    V1ContainerPort,
    V1Deployment,
    V1DeploymentSpec,
    V1EnvFromSource,
    V1HTTPIngressPath,
    V1HTTPIngressRuleValue,
    V1Ingress,
    V1IngressBackend,
    V1IngressRule,
    V1IngressServiceBackend,
    V1IngressSpec,
    V1IngressTLS,
    V1LabelSelector,
    V1LocalObjectReference,
    V1ObjectMeta,
    V1PodSpec,
    V1PodTemplateSpec,
    V1ResourceRequirements,
    V1SecretEnvSource,
    V1Service,
    V1ServiceBackendPort,
    V1ServicePort,
    V1ServiceSpec,
)

from .cluster import ClusterGateway
from .config import Settings
from .errors import DeploymentError, FoundryError
from .metrics import deploys_total
from .models import DeployRequest
from .naming import (
    environment_secret_name,
    image_reference,
    ingress_host,
    project_labels,
    project_secret_name,
    selector_labels,
    tls_secret_name,
)
from .reconcile import ResourceOps, reconcile_resource
from .secrets import SecretLifecycleManager

logger = logging.getLogger(__name__)

SERVICE_PORT = 80


class DeployReconciler:
    """
    Ensures a project's four cluster resources exist and match desired state.

    Resources are reconciled strictly in order: secret, deployment, service,
    ingress. A failing step is logged and recorded but later steps still
    run; resources that reconciled are never rolled back.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        settings: Settings,
        secrets: Optional[SecretLifecycleManager] = None,
    ):
        """
        Initialize deploy reconciler.

        Args:
            gateway: Cluster gateway
            settings: Application settings
            secrets: Secret manager (created from the gateway if omitted)
        """
        self.gateway = gateway
        self.settings = settings
        self.secrets = secrets or SecretLifecycleManager(gateway)
        self._deployments = ResourceOps(
            kind="Deployment",
            create=gateway.create_deployment,
            read=gateway.get_deployment,
            replace=gateway.replace_deployment,
        )
        self._services = ResourceOps(
            kind="Service",
            create=gateway.create_service,
            read=gateway.get_service,
            replace=gateway.replace_service,
        )
        self._ingresses = ResourceOps(
            kind="Ingress",
            create=gateway.create_ingress,
            read=gateway.get_ingress,
            replace=gateway.replace_ingress,
        )

    def project_url(self, project_id: str) -> str:
        """Externally reachable URL of a project."""
        scheme = "https" if self.settings.ingress_tls_enabled else "http"
        return f"{scheme}://{ingress_host(project_id, self.settings.platform_domain)}"

    def deploy(self, request: DeployRequest) -> str:
        """
        Reconcile every resource of a project.

        Args:
            request: Desired project state

        Returns:
            Public URL of the project

        Raises:
            UnavailableError: If the cluster is not connected
            DeploymentError: If any resource failed to reconcile
        """
        self.gateway.require_available()
        namespace = self.settings.namespace
        failures: dict[str, str] = {}

        try:
            secret_name = self.secrets.upsert_project_secret(
                namespace, request.project_id, request.owner_id, request.config
            )
        except FoundryError as e:
            logger.error(f"Secret apply error for {request.project_id}: {e}")
            failures["secret"] = str(e)
            # The workload still references the deterministic name.
            secret_name = project_secret_name(request.owner_id, request.project_id)

        steps = (
            ("deployment", self._deployments, self.build_deployment(request, secret_name), False),
            ("service", self._services, self.build_service(request), True),
            ("ingress", self._ingresses, self.build_ingress(request), False),
        )
        for label, ops, desired, read_first in steps:
            try:
                reconcile_resource(
                    ops,
                    namespace,
                    desired,
                    read_first=read_first,
                    carry_over=_keep_cluster_ip if label == "service" else None,
                )
            except FoundryError as e:
                logger.error(f"{ops.kind} apply error for {request.project_id}: {e}")
                failures[label] = str(e)

        url = self.project_url(request.project_id)
        if failures:
            deploys_total.labels(result="failed").inc()
            raise DeploymentError(url, failures)

        deploys_total.labels(result="succeeded").inc()
        logger.info(f"Deployed project {request.name} ({request.project_id}) at {url}")
        return url

    def build_deployment(self, request: DeployRequest, secret_name: str) -> V1Deployment:
        """Desired Deployment for a project."""
        selector = selector_labels(request.project_id, request.owner_id)
        labels = {**project_labels(request.project_id, request.owner_id), **selector}
        resources = {
            "cpu": self.settings.workload_cpu,
            "memory": self.settings.workload_memory,
        }

        # Later sources win, so the project's own secret goes last.
        env_from = [
            V1EnvFromSource(
                secret_ref=V1SecretEnvSource(
                    name=environment_secret_name(env_id), optional=True
                )
            )
            for env_id in request.environment_ids
        ]
        env_from.append(V1EnvFromSource(secret_ref=V1SecretEnvSource(name=secret_name)))

        container = V1Container(
            name="app",
            image=image_reference(
                self.settings.container_registry,
                request.project_id,
                self.settings.image_tag,
            ),
            ports=[V1ContainerPort(container_port=request.target_port)],
            env_from=env_from,
            image_pull_policy="Always",
            resources=V1ResourceRequirements(requests=resources, limits=dict(resources)),
        )

        pod_spec = V1PodSpec(
            containers=[container],
            node_selector=dict(self.settings.node_selector),
            image_pull_secrets=[
                V1LocalObjectReference(name=self.settings.registry_pull_secret)
            ],
        )

        return V1Deployment(
            api_version="apps/v1",
            kind="Deployment",
            metadata=V1ObjectMeta(name=request.project_id, labels=labels),
            spec=V1DeploymentSpec(
                replicas=request.replicas,
                selector=V1LabelSelector(match_labels=selector),
                template=V1PodTemplateSpec(
                    metadata=V1ObjectMeta(labels=labels),
                    spec=pod_spec,
                ),
            ),
        )

    def build_service(self, request: DeployRequest) -> V1Service:
        """Desired ClusterIP Service for a project."""
        return V1Service(
            api_version="v1",
            kind="Service",
            metadata=V1ObjectMeta(
                name=request.project_id,
                labels=project_labels(request.project_id, request.owner_id),
            ),
            spec=V1ServiceSpec(
                type="ClusterIP",
                selector=selector_labels(request.project_id, request.owner_id),
                ports=[
                    V1ServicePort(
                        protocol="TCP",
                        port=SERVICE_PORT,
                        target_port=request.target_port,
                    )
                ],
            ),
        )

    def build_ingress(self, request: DeployRequest) -> V1Ingress:
        """Desired Ingress for a project."""
        host = ingress_host(request.project_id, self.settings.platform_domain)
        backend = V1IngressBackend(
            service=V1IngressServiceBackend(
                name=request.project_id,
                port=V1ServiceBackendPort(number=SERVICE_PORT),
            )
        )
        tls = None
        if self.settings.ingress_tls_enabled:
            tls = [V1IngressTLS(hosts=[host], secret_name=tls_secret_name(request.project_id))]

        return V1Ingress(
            api_version="networking.k8s.io/v1",
            kind="Ingress",
            metadata=V1ObjectMeta(
                name=request.project_id,
                labels=project_labels(request.project_id, request.owner_id),
                annotations={"cert-manager.io/cluster-issuer": self.settings.cluster_issuer},
            ),
            spec=V1IngressSpec(
                ingress_class_name=self.settings.ingress_class,
                tls=tls,
                rules=[
                    V1IngressRule(
                        host=host,
                        http=V1HTTPIngressRuleValue(
                            paths=[
                                V1HTTPIngressPath(
                                    path="/",
                                    path_type="Prefix",
                                    backend=backend,
                                )
                            ]
                        ),
                    )
                ],
            ),
        )


def _keep_cluster_ip(existing: V1Service, desired: V1Service) -> None:
    # clusterIP is immutable; dropping it would orphan the ingress binding.
    desired.spec.cluster_ip = existing.spec.cluster_ip
