"""Tests for DeployReconciler."""

import pytest

from foundry_k8s import DeployReconciler, DeployRequest
from foundry_k8s.errors import DeploymentError, UnavailableError, UpstreamError


@pytest.fixture
def deploy_request():
    """Sample deploy request."""
    return DeployRequest(
        project_id="p1",
        owner_id="o1",
        name="demo",
        config={"A": "1"},
        target_port=3000,
    )


class TestDeployReconciler:
    """Test cases for DeployReconciler."""

    def test_deploy_creates_resources(self, gateway, settings, deploy_request):
        """Test a first deploy creates all four resources."""
        reconciler = DeployReconciler(gateway, settings)
        url = reconciler.deploy(deploy_request)

        assert url == "https://p1-foundry.example.com"
        assert gateway.names("Secret") == ["foundry-secret-o1-p1"]
        assert gateway.names("Deployment") == ["p1"]
        assert gateway.names("Service") == ["p1"]
        assert gateway.names("Ingress") == ["p1"]

    def test_deploy_order(self, gateway, settings, deploy_request):
        """Test resources reconcile as secret, deployment, service, ingress."""
        DeployReconciler(gateway, settings).deploy(deploy_request)

        creates = [m for m in gateway.call_names() if m.startswith("create_")]
        assert creates == [
            "create_secret",
            "create_deployment",
            "create_service",
            "create_ingress",
        ]

    def test_deploy_is_idempotent(self, gateway, settings, deploy_request):
        """Test redeploying updates in place and returns the same URL."""
        reconciler = DeployReconciler(gateway, settings)
        first = reconciler.deploy(deploy_request)
        cluster_ip = gateway.get("Service", "p1").spec.cluster_ip

        second = reconciler.deploy(deploy_request)

        assert second == first
        assert gateway.names("Deployment") == ["p1"]
        assert gateway.get("Service", "p1").spec.cluster_ip == cluster_ip
        assert gateway.call_names().count("replace_service") == 1

    def test_redeploy_applies_new_port(self, gateway, settings, deploy_request):
        """Test a changed port reaches both the container and the service."""
        reconciler = DeployReconciler(gateway, settings)
        reconciler.deploy(deploy_request)

        reconciler.deploy(deploy_request.model_copy(update={"target_port": 8080}))

        deployment = gateway.get("Deployment", "p1")
        service = gateway.get("Service", "p1")
        assert deployment.spec.template.spec.containers[0].ports[0].container_port == 8080
        assert service.spec.ports[0].port == 80
        assert service.spec.ports[0].target_port == 8080

    def test_deployment_spec(self, gateway, settings, deploy_request):
        """Test the workload shape."""
        DeployReconciler(gateway, settings).deploy(deploy_request)

        deployment = gateway.get("Deployment", "p1")
        pod_spec = deployment.spec.template.spec
        container = pod_spec.containers[0]

        assert deployment.spec.replicas == 1
        assert deployment.spec.selector.match_labels == {
            "app": "foundry-app",
            "project-id": "p1",
            "owner-id": "o1",
        }
        assert deployment.metadata.labels["managed-by"] == "foundry"
        assert container.image == "registry.example.com/foundry/p1:latest"
        assert container.image_pull_policy == "Always"
        assert container.resources.requests == {"cpu": "1", "memory": "1Gi"}
        assert container.resources.limits == container.resources.requests
        assert container.env_from[-1].secret_ref.name == "foundry-secret-o1-p1"
        assert pod_spec.node_selector == {"role": "apps"}
        assert pod_spec.image_pull_secrets[0].name == "regcred"

    def test_environment_groups_precede_project_secret(self, gateway, settings, deploy_request):
        """Test environment groups are optional sources before the project secret."""
        request = deploy_request.model_copy(update={"environment_ids": ["e1", "e2"]})
        DeployReconciler(gateway, settings).deploy(request)

        env_from = gateway.get("Deployment", "p1").spec.template.spec.containers[0].env_from
        assert [e.secret_ref.name for e in env_from] == [
            "foundry-env-e1",
            "foundry-env-e2",
            "foundry-secret-o1-p1",
        ]
        assert env_from[0].secret_ref.optional is True

    def test_ingress_spec(self, gateway, settings, deploy_request):
        """Test the ingress routes the project host to the service."""
        DeployReconciler(gateway, settings).deploy(deploy_request)

        ingress = gateway.get("Ingress", "p1")
        rule = ingress.spec.rules[0]
        backend = rule.http.paths[0].backend.service

        assert ingress.spec.ingress_class_name == "nginx"
        assert ingress.metadata.annotations == {
            "cert-manager.io/cluster-issuer": "letsencrypt-prod"
        }
        assert ingress.spec.tls[0].hosts == ["p1-foundry.example.com"]
        assert ingress.spec.tls[0].secret_name == "p1-tls"
        assert rule.host == "p1-foundry.example.com"
        assert rule.http.paths[0].path_type == "Prefix"
        assert (backend.name, backend.port.number) == ("p1", 80)

    def test_plain_http_without_tls(self, gateway, settings, deploy_request):
        """Test disabling TLS drops the TLS block and the https scheme."""
        settings = settings.model_copy(update={"ingress_tls_enabled": False})
        url = DeployReconciler(gateway, settings).deploy(deploy_request)

        assert url == "http://p1-foundry.example.com"
        assert gateway.get("Ingress", "p1").spec.tls is None

    def test_partial_failure(self, gateway, settings, deploy_request):
        """Test a failing step is reported while the others still apply."""
        gateway.failures["create_service"] = UpstreamError("Service", "p1", 500)

        with pytest.raises(DeploymentError) as exc_info:
            DeployReconciler(gateway, settings).deploy(deploy_request)

        assert list(exc_info.value.failures) == ["service"]
        assert exc_info.value.url == "https://p1-foundry.example.com"
        assert gateway.names("Deployment") == ["p1"]
        assert gateway.names("Ingress") == ["p1"]
        assert gateway.names("Service") == []

    def test_secret_failure_keeps_secret_reference(self, gateway, settings, deploy_request):
        """Test the workload references the project secret even if writing it failed."""
        gateway.failures["create_secret"] = UpstreamError("Secret", "foundry-secret-o1-p1", 500)

        with pytest.raises(DeploymentError) as exc_info:
            DeployReconciler(gateway, settings).deploy(deploy_request)

        assert list(exc_info.value.failures) == ["secret"]
        env_from = gateway.get("Deployment", "p1").spec.template.spec.containers[0].env_from
        assert env_from[-1].secret_ref.name == "foundry-secret-o1-p1"

    def test_unavailable(self, unavailable_gateway, settings, deploy_request):
        """Test deploy fails fast without a cluster."""
        with pytest.raises(UnavailableError):
            DeployReconciler(unavailable_gateway, settings).deploy(deploy_request)
