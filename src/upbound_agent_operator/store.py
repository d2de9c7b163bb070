"""Object store access for the reconciler.

The reconciler only talks to the cluster through ``ObjectStore``: get, create,
replace and delete of plain dict objects, with "not found" raised as a
distinct ``NotFoundError``. ``KubernetesStore`` implements it on top of the
official ``kubernetes`` client.
"""

import abc
import copy
import enum
import logging
import time
from typing import Any, Callable, Dict, Optional

import kubernetes
import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException

from . import constants as C
from .errors import ConflictError, DeadlineExceededError, NotFoundError, StoreError

logger = logging.getLogger(__name__)


class Deadline:
    """A cancellation scope bounding a reconcile.

    Cancellation is cooperative: stores call ``check()`` before every
    blocking call and pass ``remaining()`` as the request timeout.
    """

    def __init__(self, expires_at: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._expires_at = expires_at
        self._clock = clock
        self._cancelled = False

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(clock() + seconds, clock=clock)

    def child(self, seconds: float) -> "Deadline":
        """Return a deadline expiring after ``seconds`` or with this one, whichever is first."""
        expires_at = self._clock() + seconds
        if self._expires_at is not None:
            expires_at = min(expires_at, self._expires_at)
        child = Deadline(expires_at, clock=self._clock)
        child._cancelled = self._cancelled
        return child

    def cancel(self) -> None:
        self._cancelled = True

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        if self._cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        if self._cancelled:
            raise DeadlineExceededError("reconcile cancelled")
        if self.expired:
            raise DeadlineExceededError("reconcile deadline exceeded")


class ObjectStore(abc.ABC):
    """Narrow interface to a strongly consistent object store."""

    @abc.abstractmethod
    def get(self, kind: str, namespace: str, name: str, deadline: Optional[Deadline] = None) -> Dict[str, Any]:
        """Return the object, or raise NotFoundError."""

    @abc.abstractmethod
    def create(self, obj: Dict[str, Any], deadline: Optional[Deadline] = None) -> Dict[str, Any]:
        """Create the object and return it as stored."""

    @abc.abstractmethod
    def replace(self, obj: Dict[str, Any], deadline: Optional[Deadline] = None) -> Dict[str, Any]:
        """Replace the object, raising ConflictError if its resourceVersion is stale."""

    @abc.abstractmethod
    def delete(self, kind: str, namespace: str, name: str, deadline: Optional[Deadline] = None) -> None:
        """Delete the object, or raise NotFoundError."""


class OperationResult(str, enum.Enum):
    """Outcome of create_or_update."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def create_or_update(
    store: ObjectStore,
    obj: Dict[str, Any],
    mutate: Callable[[Dict[str, Any]], None],
    deadline: Optional[Deadline] = None,
) -> OperationResult:
    """Create the object or bring the live one in line using ``mutate``.

    ``mutate`` is applied in place to either ``obj`` (when nothing exists yet)
    or a copy of the live object. The live object is only written when the
    mutation changed it. A conflicting concurrent write surfaces as
    ConflictError; there is no retry here.
    """
    kind = obj.get("kind", "")
    namespace = obj["metadata"]["namespace"]
    name = obj["metadata"]["name"]

    try:
        existing = store.get(kind, namespace, name, deadline=deadline)
    except NotFoundError:
        _mutate(mutate, obj, namespace, name)
        store.create(obj, deadline=deadline)
        logger.debug(f"Created {kind} {namespace}/{name}")
        return OperationResult.CREATED

    desired = copy.deepcopy(existing)
    _mutate(mutate, desired, namespace, name)
    if desired == existing:
        return OperationResult.UNCHANGED

    store.replace(desired, deadline=deadline)
    logger.debug(f"Updated {kind} {namespace}/{name}")
    return OperationResult.UPDATED


def _mutate(mutate: Callable[[Dict[str, Any]], None], obj: Dict[str, Any], namespace: str, name: str) -> None:
    mutate(obj)
    if obj["metadata"].get("namespace") != namespace or obj["metadata"].get("name") != name:
        raise ValueError("mutate must not change the object name or namespace")


def load_kube_config() -> None:
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        kubernetes.config.load_incluster_config()
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()


class KubernetesStore(ObjectStore):
    """ObjectStore backed by the Kubernetes API."""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self.api_client = api_client or client.ApiClient()
        self.core = client.CoreV1Api(self.api_client)
        self.apps = client.AppsV1Api(self.api_client)

    def get(self, kind, namespace, name, deadline=None):
        if kind == C.KIND_CONFIGMAP:
            read = self.core.read_namespaced_config_map
        elif kind == C.KIND_SECRET:
            read = self.core.read_namespaced_secret
        elif kind == C.KIND_DEPLOYMENT:
            read = self.apps.read_namespaced_deployment
        else:
            raise StoreError(f"Unsupported kind: {kind}")

        result = self._call(read, f"get {kind} {namespace}/{name}", deadline, name, namespace)
        return self._to_dict(result, kind)

    def create(self, obj, deadline=None):
        kind, namespace, name = _identity(obj)
        if kind != C.KIND_DEPLOYMENT:
            raise StoreError(f"Unsupported kind for create: {kind}")
        result = self._call(
            self.apps.create_namespaced_deployment,
            f"create {kind} {namespace}/{name}", deadline, namespace, obj,
        )
        return self._to_dict(result, kind)

    def replace(self, obj, deadline=None):
        kind, namespace, name = _identity(obj)
        if kind != C.KIND_DEPLOYMENT:
            raise StoreError(f"Unsupported kind for replace: {kind}")
        result = self._call(
            self.apps.replace_namespaced_deployment,
            f"replace {kind} {namespace}/{name}", deadline, name, namespace, obj,
        )
        return self._to_dict(result, kind)

    def delete(self, kind, namespace, name, deadline=None):
        if kind != C.KIND_DEPLOYMENT:
            raise StoreError(f"Unsupported kind for delete: {kind}")
        self._call(
            self.apps.delete_namespaced_deployment,
            f"delete {kind} {namespace}/{name}", deadline, name, namespace,
            body=client.V1DeleteOptions(propagation_policy="Background"),
        )

    def _call(self, fn, what: str, deadline: Optional[Deadline], *args, **kwargs):
        if deadline is not None:
            deadline.check()
            remaining = deadline.remaining()
            if remaining is not None:
                kwargs["_request_timeout"] = remaining
        try:
            return fn(*args, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(f"{what}: not found") from e
            if e.status == 409:
                raise ConflictError(f"{what}: conflict: {e.reason}") from e
            raise StoreError(f"{what}: {e.status} {e.reason}") from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            # urllib3 timeouts and connection errors
            if deadline is not None and deadline.expired:
                raise DeadlineExceededError(f"{what}: deadline exceeded") from e
            raise StoreError(f"{what}: {e}") from e

    def _to_dict(self, obj: Any, kind: str) -> Dict[str, Any]:
        data = self.api_client.sanitize_for_serialization(obj)
        if not isinstance(data, dict):
            return {}
        # Typed reads do not populate apiVersion/kind.
        data.setdefault("apiVersion", "apps/v1" if kind == C.KIND_DEPLOYMENT else "v1")
        data.setdefault("kind", kind)
        return data


def _identity(obj: Dict[str, Any]):
    metadata = obj.get("metadata", {})
    return obj.get("kind", ""), metadata.get("namespace", ""), metadata.get("name", "")
