"""Cluster connectivity check: python -m foundry_k8s."""

import argparse
import logging
import sys
from typing import Optional

from . import __version__
from .cluster import ClusterGateway
from .config import get_settings
from .models import ClusterConfig

logger = logging.getLogger("foundry_k8s")


def main(argv: Optional[list[str]] = None) -> int:
    """Connect to the configured cluster and report its version."""
    settings = get_settings()

    parser = argparse.ArgumentParser(prog="foundry_k8s", description=__doc__)
    parser.add_argument("--kubeconfig", default=settings.kubeconfig_path)
    parser.add_argument("--context", default=settings.kube_context)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info(f"🚀 {settings.service_name} {__version__}")
    logger.info(f"   Namespace: {settings.namespace}")
    logger.info(f"   Registry: {settings.container_registry}")

    gateway = ClusterGateway.connect(
        ClusterConfig(kubeconfig_path=args.kubeconfig, context=args.context)
    )
    if not gateway.available:
        return 1

    try:
        if not gateway.connection.is_healthy():
            logger.warning("Failed to connect to cluster")
            return 1
        version = gateway.connection.get_cluster_version()
        logger.info(f"✓ Connected to cluster version: {version['git_version']}")
    finally:
        gateway.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
