"""Kubernetes Secret lifecycle for project and environment configuration."""

import logging

from kubernetes.client import V1ObjectMeta, V1Secret

from .cluster import ClusterGateway
from .errors import NotFoundError
from .naming import (
    MANAGED_BY,
    TYPE_ENVIRONMENT_GROUP,
    TYPE_PROJECT_SECRET,
    environment_secret_name,
    project_labels,
    project_secret_name,
)
from .reconcile import ResourceOps, reconcile_resource

logger = logging.getLogger(__name__)


class SecretLifecycleManager:
    """Manages the secrets that carry configuration into workloads."""

    def __init__(self, gateway: ClusterGateway):
        """
        Initialize secret manager.

        Args:
            gateway: Cluster gateway
        """
        self.gateway = gateway
        self._ops = ResourceOps(
            kind="Secret",
            create=gateway.create_secret,
            read=gateway.get_secret,
            replace=gateway.replace_secret,
        )

    def upsert(
        self,
        namespace: str,
        secret_name: str,
        labels: dict[str, str],
        values: dict[str, str],
    ) -> str:
        """
        Create or fully replace a secret.

        The value set always replaces whatever the secret held before; keys
        absent from ``values`` are removed.

        Args:
            namespace: Kubernetes namespace
            secret_name: Secret name
            labels: Labels to apply
            values: Plaintext key/value pairs

        Returns:
            The secret name

        Raises:
            UnavailableError: If the cluster is not connected
            UpstreamError: If the secret could not be written
        """
        secret = V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=V1ObjectMeta(name=secret_name, labels=dict(labels)),
            string_data=dict(values),
            type="Opaque",
        )
        _, action = reconcile_resource(self._ops, namespace, secret)
        logger.info(f"{action.capitalize()} secret {secret_name} (variables: {len(values)})")
        return secret_name

    def delete(self, namespace: str, secret_name: str) -> bool:
        """
        Delete a secret.

        Args:
            namespace: Kubernetes namespace
            secret_name: Secret name

        Returns:
            True if deleted, False if it did not exist
        """
        try:
            self.gateway.delete_secret(namespace, secret_name)
        except NotFoundError:
            return False
        logger.info(f"Deleted secret {secret_name}")
        return True

    def upsert_project_secret(
        self,
        namespace: str,
        project_id: str,
        owner_id: str,
        values: dict[str, str],
    ) -> str:
        return self.upsert(
            namespace,
            project_secret_name(owner_id, project_id),
            project_labels(project_id, owner_id, type=TYPE_PROJECT_SECRET),
            values,
        )

    def upsert_environment_secret(
        self,
        namespace: str,
        environment_id: str,
        owner_id: str,
        values: dict[str, str],
    ) -> str:
        labels = {
            "environment-id": environment_id,
            "owner-id": owner_id,
            "type": TYPE_ENVIRONMENT_GROUP,
            "managed-by": MANAGED_BY,
        }
        return self.upsert(namespace, environment_secret_name(environment_id), labels, values)

    def delete_environment_secret(self, namespace: str, environment_id: str) -> bool:
        return self.delete(namespace, environment_secret_name(environment_id))
