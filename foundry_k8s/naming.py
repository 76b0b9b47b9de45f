"""
Resource naming for Foundry projects.

Every name and label produced here is matched against resources that already
exist in running clusters, so the formats must not change:

- build job:            build-{project_id}
- project secret:       foundry-secret-{owner_id}-{project_id}
- environment secret:   foundry-env-{environment_id}
- ingress host:         {project_id}-foundry.{domain}
- image reference:      {registry}/{project_id}:{tag}
"""

MANAGED_BY = "foundry"
APP_LABEL = "foundry-app"

TYPE_BUILD = "build"
TYPE_PROJECT_SECRET = "project-secret"
TYPE_ENVIRONMENT_GROUP = "environment-group"


def build_job_name(project_id: str) -> str:
    """Name of the one-shot build job for a project."""
    return f"build-{project_id}"


def project_secret_name(owner_id: str, project_id: str) -> str:
    """
    Name of the secret holding a project's configuration.

    Examples:
        >>> project_secret_name("o1", "p1")
        'foundry-secret-o1-p1'
    """
    return f"foundry-secret-{owner_id}-{project_id}"


def environment_secret_name(environment_id: str) -> str:
    """Name of the secret holding a reusable environment group."""
    return f"foundry-env-{environment_id}"


def ingress_host(project_id: str, domain: str) -> str:
    """
    Public hostname of a project.

    Examples:
        >>> ingress_host("p1", "example.com")
        'p1-foundry.example.com'
    """
    return f"{project_id}-foundry.{domain}"


def image_reference(registry: str, project_id: str, tag: str = "latest") -> str:
    """Registry path the build pushes to and the workload pulls from."""
    return f"{registry}/{project_id}:{tag}"


def tls_secret_name(project_id: str) -> str:
    """Secret cert-manager writes the issued certificate into."""
    return f"{project_id}-tls"


def selector_labels(project_id: str, owner_id: str) -> dict[str, str]:
    """Labels the workload selects its pods by."""
    return {
        "app": APP_LABEL,
        "project-id": project_id,
        "owner-id": owner_id,
    }


def project_labels(project_id: str, owner_id: str, **extra: str) -> dict[str, str]:
    """Identity labels applied to every project-owned resource."""
    return {
        "project-id": project_id,
        "owner-id": owner_id,
        "managed-by": MANAGED_BY,
        **extra,
    }


def label_selector(labels: dict[str, str]) -> str:
    """Render a label dict as a Kubernetes label selector string."""
    return ",".join(f"{k}={v}" for k, v in labels.items())
