"""Resource builders for the Upbound Agent deployment."""

import base64
import binascii
import copy
from typing import Any, Dict, List, Optional

from . import constants as C


def build_labels() -> Dict[str, str]:
    """Build labels marking a resource as managed by this operator."""
    return {
        C.LABEL_MANAGED_BY: C.LABEL_VALUE_MANAGED_BY,
    }


def build_selector_labels() -> Dict[str, str]:
    """Labels shared by the Deployment selector and its pod template."""
    return {
        C.LABEL_APP: C.DEPLOYMENT_UPBOUND_AGENT,
    }


def build_owner_reference(owner: Dict[str, Any]) -> Dict[str, Any]:
    """Build a controller owner reference to the versions ConfigMap.

    The agent Deployment is garbage collected once the ConfigMap is gone.
    """
    return {
        "apiVersion": owner.get("apiVersion", "v1"),
        "kind": owner.get("kind", C.KIND_CONFIGMAP),
        "name": owner["metadata"]["name"],
        "uid": owner["metadata"]["uid"],
        "controller": True,
        "blockOwnerDeletion": True,
    }


def parse_env_pairs(raw: str) -> List[Dict[str, str]]:
    """Parse comma separated KEY=VALUE pairs into container env entries."""
    env = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid env entry {item!r}, expected KEY=VALUE")
        env.append({"name": key.strip(), "value": value.strip()})
    return env


def build_deployment_spec(
    token_secret: str,
    image: str = C.DEFAULT_AGENT_IMAGE,
    tag: str = C.DEFAULT_AGENT_IMAGE_TAG,
    pull_policy: str = C.DEFAULT_AGENT_PULL_POLICY,
    replicas: int = C.DEFAULT_AGENT_REPLICAS,
    extra_env: Optional[List[Dict[str, Any]]] = None,
    resources: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the default Deployment spec for the agent."""
    resources = resources or {}

    env = [
        {
            "name": "TOKEN",
            "valueFrom": {
                "secretKeyRef": {
                    "name": token_secret,
                    "key": C.KEY_TOKEN,
                }
            }
        },
    ]
    env.extend(extra_env or [])

    resource_config = {
        "requests": {
            "cpu": resources.get("requests", {}).get("cpu", C.DEFAULT_CPU_REQUEST),
            "memory": resources.get("requests", {}).get("memory", C.DEFAULT_MEMORY_REQUEST),
        },
        "limits": {
            "cpu": resources.get("limits", {}).get("cpu", C.DEFAULT_CPU_LIMIT),
            "memory": resources.get("limits", {}).get("memory", C.DEFAULT_MEMORY_LIMIT),
        },
    }

    return {
        "replicas": replicas,
        "selector": {
            "matchLabels": build_selector_labels(),
        },
        "template": {
            "metadata": {
                "labels": build_selector_labels(),
            },
            "spec": {
                "containers": [{
                    "name": C.AGENT_CONTAINER_NAME,
                    "image": f"{image}:{tag}",
                    "imagePullPolicy": pull_policy,
                    "env": env,
                    "resources": resource_config,
                }],
            },
        },
    }


def build_agent_deployment(owner: Dict[str, Any]) -> Dict[str, Any]:
    """Build the agent Deployment skeleton owned by the versions ConfigMap.

    The spec is left empty; it is filled in by the create-or-update mutator
    so that creates and updates go through the same code path.
    """
    return {
        "apiVersion": "apps/v1",
        "kind": C.KIND_DEPLOYMENT,
        "metadata": {
            "name": C.DEPLOYMENT_UPBOUND_AGENT,
            "namespace": owner["metadata"]["namespace"],
            "labels": build_labels(),
            "ownerReferences": [build_owner_reference(owner)],
        },
    }


def set_deployment_spec(deployment: Dict[str, Any], spec: Dict[str, Any]) -> None:
    """Replace the whole spec subtree of a Deployment."""
    deployment["spec"] = copy.deepcopy(spec)


def get_token(secret: Dict[str, Any]) -> str:
    """Read the bearer token from a Secret, or "" if absent or undecodable.

    Reads only carry the base64 encoded ``data`` map.
    """
    data = secret.get("data") or {}
    if not data.get(C.KEY_TOKEN):
        return ""
    try:
        return base64.b64decode(data[C.KEY_TOKEN]).decode("utf-8", errors="replace")
    except binascii.Error:
        return ""
