"""Reconciler for the Upbound Agent deployment.

Reconciles on the control plane token Secret and manages the agent
Deployment. The Deployment exists only while the versions ConfigMap exists
and the token Secret holds a non-empty token.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from . import constants as C
from . import resources
from .config import OperatorConfig
from .errors import (
    NotFoundError,
    StoreError,
    TokenSecretReadError,
    VersionsRecordReadError,
    WorkloadDeleteError,
    WorkloadSyncError,
)
from .store import Deadline, ObjectStore, create_or_update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    """Namespaced name of the object that triggered a reconcile."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class Result:
    """Requeue hint returned to the scheduler."""

    requeue: bool = False
    requeue_after: float = 0.0


ReconcilerOption = Callable[["Reconciler"], None]


def with_logger(log: logging.Logger) -> ReconcilerOption:
    """Specify how the Reconciler should log messages."""
    def option(r: "Reconciler") -> None:
        r.log = log
    return option


def with_timeout(seconds: float) -> ReconcilerOption:
    """Override the per-reconcile deadline."""
    def option(r: "Reconciler") -> None:
        r.timeout = seconds
    return option


class Reconciler:
    """Reconciles on the token Secret and manages the agent Deployment.

    Holds only immutable configuration; concurrent calls for different
    requests share no mutable state.
    """

    def __init__(self, store: ObjectStore, config: OperatorConfig):
        self.store = store
        self.config = config
        self.timeout = config.reconcile_timeout
        self.log: logging.Logger = logger

    def reconcile(self, ctx: Optional[Deadline], request: Request) -> Result:
        """Run one reconcile for ``request``.

        Returns a Result on success (including the no-op cases) and raises a
        ReconcileError subclass when the scheduler should retry.
        """
        log = self.log
        log.debug(f"Reconciling... request={request}")

        deadline = (ctx or Deadline()).child(self.timeout)

        # The agent Deployment carries an owner reference to the versions
        # ConfigMap and is garbage collected once the ConfigMap is gone.
        try:
            cm = self.store.get(C.KIND_CONFIGMAP, request.namespace, C.CONFIGMAP_UXP_VERSIONS, deadline=deadline)
        except NotFoundError:
            return Result()
        except StoreError as e:
            raise VersionsRecordReadError(e) from e

        try:
            secret = self.store.get(C.KIND_SECRET, request.namespace, request.name, deadline=deadline)
        except NotFoundError:
            # Token Secret is gone, clean up the agent Deployment.
            if self._delete_agent_deployment(cm, deadline):
                log.info(f"Token secret not found, agent deployment deleted request={request}")
            else:
                log.debug(f"Token secret not found, agent deployment already absent request={request}")
            return Result()
        except StoreError as e:
            raise TokenSecretReadError(e) from e

        if not resources.get_token(secret):
            # Not an error: another event arrives once the token is written.
            log.info(
                f"Secret does not contain a token for key "
                f"request={request} secret={self.config.token_secret} key={C.KEY_TOKEN}"
            )
            return Result()

        try:
            self._sync_agent_deployment(cm, deadline)
        except WorkloadSyncError as e:
            log.info(f"{e} request={request}")
            raise

        log.info(f"Successfully synced Upbound Agent deployment! request={request}")
        return Result()

    def _delete_agent_deployment(self, cm: Dict[str, Any], deadline: Deadline) -> bool:
        """Delete the agent Deployment; False when it was already gone."""
        namespace = cm["metadata"]["namespace"]
        try:
            self.store.delete(C.KIND_DEPLOYMENT, namespace, C.DEPLOYMENT_UPBOUND_AGENT, deadline=deadline)
        except NotFoundError:
            return False
        except StoreError as e:
            raise WorkloadDeleteError(e) from e
        return True

    def _sync_agent_deployment(self, cm: Dict[str, Any], deadline: Deadline) -> None:
        deployment = resources.build_agent_deployment(cm)
        desired_spec = self.config.desired_spec()

        # Replace the whole spec rather than merging, so fields dropped from
        # the configured spec are also dropped from the live object.
        def mutate(obj: Dict[str, Any]) -> None:
            resources.set_deployment_spec(obj, desired_spec)

        try:
            result = create_or_update(self.store, deployment, mutate, deadline=deadline)
        except (StoreError, ValueError) as e:
            raise WorkloadSyncError(e) from e
        self.log.debug(f"Agent deployment {result.value} namespace={cm['metadata']['namespace']}")


def new_reconciler(store: ObjectStore, config: OperatorConfig, *options: ReconcilerOption) -> Reconciler:
    """Return a new Reconciler with the given options applied."""
    r = Reconciler(store, config)
    for option in options:
        option(r)
    return r
