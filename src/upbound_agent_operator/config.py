"""Startup configuration for the operator.

The configuration is read once at process start and never changes afterwards.
The desired Deployment spec is generated from environment variables, or read
from a YAML file when ``AGENT_DEPLOYMENT_SPEC_FILE`` is set.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import yaml

from . import constants as C
from . import resources
from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperatorConfig:
    """Immutable operator configuration."""

    token_secret: str
    deployment_spec: Dict[str, Any] = field(default_factory=dict, repr=False)
    watch_namespace: str = ""
    reconcile_timeout: float = C.DEFAULT_RECONCILE_TIMEOUT_S
    retry_limit: int = C.DEFAULT_RETRY_LIMIT
    retry_backoff: float = C.DEFAULT_RETRY_BACKOFF_S
    retry_backoff_max: float = C.DEFAULT_RETRY_BACKOFF_MAX_S

    def __post_init__(self):
        if not self.token_secret:
            raise ConfigError("token secret name must not be empty")
        if not isinstance(self.deployment_spec, dict):
            raise ConfigError("deployment spec must be a mapping")
        if self.reconcile_timeout <= 0:
            raise ConfigError("reconcile timeout must be positive")
        if self.retry_limit < 1:
            raise ConfigError("retry limit must be at least 1")
        if self.retry_backoff < 0 or self.retry_backoff_max < self.retry_backoff:
            raise ConfigError("retry backoff must be non-negative and not exceed the maximum")
        # Keep a private copy so the caller's dict cannot leak mutations in.
        object.__setattr__(self, "deployment_spec", copy.deepcopy(self.deployment_spec))

    def desired_spec(self) -> Dict[str, Any]:
        """Return a fresh copy of the desired Deployment spec."""
        return copy.deepcopy(self.deployment_spec)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OperatorConfig":
        """Build configuration from environment variables."""
        env = os.environ if environ is None else environ

        token_secret = env.get("CONTROL_PLANE_TOKEN_SECRET", C.DEFAULT_TOKEN_SECRET)
        spec_file = env.get("AGENT_DEPLOYMENT_SPEC_FILE", C.DEFAULT_DEPLOYMENT_SPEC_FILE)

        try:
            if spec_file:
                deployment_spec = load_deployment_spec(spec_file)
            else:
                deployment_spec = resources.build_deployment_spec(
                    token_secret,
                    image=env.get("AGENT_IMAGE", C.DEFAULT_AGENT_IMAGE),
                    tag=env.get("AGENT_IMAGE_TAG", C.DEFAULT_AGENT_IMAGE_TAG),
                    pull_policy=env.get("AGENT_IMAGE_PULL_POLICY", C.DEFAULT_AGENT_PULL_POLICY),
                    replicas=int(env.get("AGENT_REPLICAS", C.DEFAULT_AGENT_REPLICAS)),
                    extra_env=resources.parse_env_pairs(env.get("AGENT_EXTRA_ENV", C.DEFAULT_AGENT_EXTRA_ENV)),
                    resources={
                        "requests": {
                            "cpu": env.get("AGENT_CPU_REQUEST", C.DEFAULT_CPU_REQUEST),
                            "memory": env.get("AGENT_MEMORY_REQUEST", C.DEFAULT_MEMORY_REQUEST),
                        },
                        "limits": {
                            "cpu": env.get("AGENT_CPU_LIMIT", C.DEFAULT_CPU_LIMIT),
                            "memory": env.get("AGENT_MEMORY_LIMIT", C.DEFAULT_MEMORY_LIMIT),
                        },
                    },
                )

            return cls(
                token_secret=token_secret,
                deployment_spec=deployment_spec,
                watch_namespace=env.get("WATCH_NAMESPACE", C.DEFAULT_WATCH_NAMESPACE),
                reconcile_timeout=float(env.get("RECONCILE_TIMEOUT_SECONDS", C.DEFAULT_RECONCILE_TIMEOUT_S)),
                retry_limit=int(env.get("RETRY_LIMIT", C.DEFAULT_RETRY_LIMIT)),
                retry_backoff=float(env.get("RETRY_BACKOFF_SECONDS", C.DEFAULT_RETRY_BACKOFF_S)),
                retry_backoff_max=float(env.get("RETRY_BACKOFF_MAX_SECONDS", C.DEFAULT_RETRY_BACKOFF_MAX_S)),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid operator configuration: {e}") from e


def load_deployment_spec(path: str) -> Dict[str, Any]:
    """Load a Deployment spec from a YAML file.

    The file may hold either the spec itself or a whole Deployment manifest,
    in which case its ``spec`` is used.
    """
    logger.info(f"Loading agent deployment spec from {path}")
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read deployment spec file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in deployment spec file {path}: {e}") from e

    if isinstance(data, dict) and data.get("kind") == C.KIND_DEPLOYMENT:
        data = data.get("spec")
    if not isinstance(data, dict):
        raise ConfigError(f"Deployment spec file {path} must contain a mapping")
    return data
