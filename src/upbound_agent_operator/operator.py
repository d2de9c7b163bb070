"""Kopf wiring for the Upbound Agent reconciler."""

import logging
import os
import time
from typing import Callable

import kopf

from . import constants as C
from . import predicates
from .config import OperatorConfig
from .errors import ConfigError, ReconcileError
from .reconciler import Reconciler, Request, new_reconciler, with_logger
from .store import KubernetesStore, load_kube_config

logger = logging.getLogger(__name__)


def handle_request(
    reconciler: Reconciler,
    config: OperatorConfig,
    request: Request,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Reconcile ``request``, retrying failures with exponential backoff.

    Every attempt re-reads fresh state. Returns True once a reconcile
    succeeds, False after giving up; the next watch event starts over.
    """
    backoff = config.retry_backoff
    for attempt in range(1, config.retry_limit + 1):
        try:
            result = reconciler.reconcile(None, request)
        except ReconcileError as e:
            if attempt == config.retry_limit:
                logger.error(f"Giving up on request={request} after {attempt} attempts: {e}")
                return False
            logger.warning(f"Reconcile failed request={request} attempt={attempt}: {e}, retrying in {backoff}s")
            sleep(backoff)
            backoff = min(backoff * 2, config.retry_backoff_max)
            continue

        if not result.requeue and not result.requeue_after:
            return True
        sleep(result.requeue_after or backoff)
    return False


def request_for_event(kind: str, namespace: str, name: str, config: OperatorConfig) -> Request:
    """Map a watch event to the request to reconcile.

    Secret events reconcile that Secret. Agent Deployment events are only
    triggers and reconcile the configured token Secret.
    """
    if kind == C.KIND_DEPLOYMENT:
        return Request(namespace, config.token_secret)
    return Request(namespace, name)


def register(registry: kopf.OperatorRegistry, reconciler: Reconciler, config: OperatorConfig) -> None:
    """Register watch handlers for the token Secret and the agent Deployment.

    Only raw event handlers are used, so kopf never adds finalizers or
    annotations to the watched objects.
    """
    accept = predicates.build_event_filter(config.token_secret)

    def secret_filter(name, **_):
        return accept(C.KIND_SECRET, name)

    def deployment_filter(name, **_):
        return accept(C.KIND_DEPLOYMENT, name)

    @kopf.on.startup(registry=registry)
    def configure(settings: kopf.OperatorSettings, **_):
        settings.posting.level = logging.WARNING
        settings.networking.request_timeout = config.reconcile_timeout
        settings.watching.server_timeout = 300
        logger.info(
            f"Starting {C.OPERATOR_NAME} token_secret={config.token_secret} "
            f"namespace={config.watch_namespace or '*'}"
        )

    @kopf.on.event("v1", "secrets", registry=registry, when=secret_filter)
    def on_token_secret_event(name, namespace, type, **_):
        logger.debug(f"Token secret event type={type} secret={namespace}/{name}")
        handle_request(reconciler, config, request_for_event(C.KIND_SECRET, namespace, name, config))

    @kopf.on.event("apps", "v1", "deployments", registry=registry, when=deployment_filter)
    def on_agent_deployment_event(name, namespace, type, **_):
        logger.debug(f"Agent deployment event type={type} deployment={namespace}/{name}")
        handle_request(reconciler, config, request_for_event(C.KIND_DEPLOYMENT, namespace, name, config))


def main():
    """Entry point for the operator."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", C.DEFAULT_LOG_LEVEL).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        config = OperatorConfig.from_env()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        raise SystemExit(1)

    load_kube_config()
    reconciler = new_reconciler(
        KubernetesStore(), config,
        with_logger(logging.getLogger(f"{__package__}.controller.{C.CONTROLLER_NAME}")),
    )

    registry = kopf.OperatorRegistry()
    register(registry, reconciler, config)

    # Kopf takes over from here
    kopf.run(
        registry=registry,
        standalone=True,
        clusterwide=not config.watch_namespace,
        namespaces=[config.watch_namespace] if config.watch_namespace else (),
    )


if __name__ == "__main__":
    main()
