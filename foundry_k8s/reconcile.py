"""Idempotent create-or-update and best-effort cleanup helpers."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .errors import CleanupError, ConflictError, FoundryError, NotFoundError
from .metrics import resource_reconciles_total

logger = logging.getLogger(__name__)


@dataclass
class ResourceOps:
    """Gateway operations for one resource kind."""

    kind: str
    create: Callable[[str, Any], Any]
    read: Callable[[str, str], Any]
    replace: Callable[[str, str, Any], Any]


def reconcile_resource(
    ops: ResourceOps,
    namespace: str,
    desired: Any,
    read_first: bool = False,
    carry_over: Optional[Callable[[Any, Any], None]] = None,
) -> tuple[Any, str]:
    """
    Make the named resource match ``desired``.

    By default the resource is created and, if it already exists, the live
    object is read so its resourceVersion can be attached to a full replace.
    With ``read_first`` the live object is read up front and the resource is
    only created when absent; use this when fields of the live object must be
    carried into the replacement.

    Args:
        ops: Gateway operations for the resource kind
        namespace: Kubernetes namespace
        desired: Full desired object; mutated with the live resourceVersion
        read_first: Read before writing instead of creating first
        carry_over: Called as ``carry_over(existing, desired)`` before replace

    Returns:
        Tuple of (resulting object, "created" or "updated")

    Raises:
        FoundryError: If any call other than the expected conflict fails
    """
    name = desired.metadata.name

    if read_first:
        try:
            existing = ops.read(namespace, name)
        except NotFoundError:
            existing = None
        if existing is None:
            result, action = ops.create(namespace, desired), "created"
        else:
            result, action = _replace(ops, namespace, desired, existing, carry_over), "updated"
    else:
        try:
            result, action = ops.create(namespace, desired), "created"
        except ConflictError:
            existing = ops.read(namespace, name)
            result, action = _replace(ops, namespace, desired, existing, carry_over), "updated"

    resource_reconciles_total.labels(kind=ops.kind, action=action).inc()
    logger.info(f"{action.capitalize()} {ops.kind} {name}")
    return result, action


def _replace(
    ops: ResourceOps,
    namespace: str,
    desired: Any,
    existing: Any,
    carry_over: Optional[Callable[[Any, Any], None]],
) -> Any:
    desired.metadata.resource_version = existing.metadata.resource_version
    if carry_over:
        carry_over(existing, desired)
    return ops.replace(namespace, desired.metadata.name, desired)


@dataclass
class CleanupRun:
    """
    Runs independent cleanup steps, recording failures instead of stopping.

    A step whose target is already gone counts as completed.
    """

    completed: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def step(self, label: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            result = fn(*args)
        except NotFoundError:
            logger.debug(f"Cleanup step {label}: already absent")
            self.completed.append(label)
            return None
        except FoundryError as e:
            logger.warning(f"Cleanup step {label} failed: {e}")
            self.failures.append(f"{label}: {e}")
            return None
        self.completed.append(label)
        return result

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise ``CleanupError`` aggregating every failed step."""
        if self.failures:
            raise CleanupError(self.failures)
