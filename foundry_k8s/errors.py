"""Error taxonomy for Foundry cluster operations."""

from typing import Optional


class FoundryError(Exception):
    """Base class for every error raised by the control plane."""

    pass


class UnavailableError(FoundryError):
    """Raised when the cluster capability has not been initialized."""

    def __init__(self, message: str = "kubernetes client not initialized"):
        super().__init__(message)


class NotFoundError(FoundryError):
    """Raised when a referenced project, job, pod or resource is absent."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} {name} not found")


class ConflictError(FoundryError):
    """Raised when a resource already exists or its version is stale.

    Resolved internally by the upsert paths and never surfaced to callers.
    """

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} {name} already exists or was modified")


class UpstreamError(FoundryError):
    """Raised when a cluster API call fails for any other reason."""

    def __init__(
        self,
        kind: str,
        name: str,
        status: Optional[int] = None,
        reason: Optional[str] = None,
    ):
        self.kind = kind
        self.name = name
        self.status = status
        self.reason = reason
        detail = f"{status} {reason}" if status else reason or "request failed"
        super().__init__(f"{kind} {name}: {detail}")


class BuildTimeoutError(FoundryError):
    """Raised when a build exceeds its deadline."""

    pass


class InvalidActionError(FoundryError):
    """Raised for lifecycle actions other than start and stop."""

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Invalid action: {action!r}")


class DeploymentError(FoundryError):
    """Raised when one or more deploy steps failed.

    The resources that did reconcile are left in place; ``url`` is the
    address the project will be reachable at once a retry succeeds.
    """

    def __init__(self, url: str, failures: dict[str, str]):
        self.url = url
        self.failures = failures
        summary = ", ".join(f"{kind}: {err}" for kind, err in failures.items())
        super().__init__(f"deploy errors: {summary}")


class CleanupError(FoundryError):
    """Raised when one or more teardown steps failed."""

    def __init__(self, failures: list[str]):
        self.failures = failures
        super().__init__(f"cleanup errors: {failures}")
