"""Configuration management for the Foundry control plane."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Settings
    service_name: str = "foundry-control"
    version: str = "0.1.0"
    log_level: str = "INFO"

    # Kubernetes Settings
    kubeconfig_path: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file; in-cluster config is tried first",
    )
    kube_context: Optional[str] = None
    namespace: str = "apps"

    # Registry Settings
    container_registry: str = "foundry-local"
    image_tag: str = "latest"
    registry_pull_secret: str = "regcred"

    # Routing Settings
    platform_domain: str = "example.com"
    ingress_class: str = "nginx"
    cluster_issuer: str = "letsencrypt-prod"
    ingress_tls_enabled: bool = True

    # Scheduling Settings
    node_selector: dict[str, str] = Field(default_factory=lambda: {"role": "apps"})
    workload_cpu: str = "1"
    workload_memory: str = "1Gi"

    # Build Settings
    builder_image: str = "gcr.io/kaniko-project/executor:latest"
    build_ttl_seconds: int = 3600
    build_backoff_limit: int = 0
    build_poll_interval_seconds: float = 5.0
    build_timeout_seconds: float = 20 * 60

    # Observability Settings
    log_tail_lines: int = 100
    metrics_root: str = "/apis/metrics.k8s.io/v1beta1"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
