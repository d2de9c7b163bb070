"""
Shared fixtures: an in-memory object store and a ready-made configuration.
"""
import base64
import copy
import itertools
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from upbound_agent_operator import constants as C
from upbound_agent_operator.config import OperatorConfig
from upbound_agent_operator.errors import ConflictError, NotFoundError
from upbound_agent_operator.reconciler import Request, new_reconciler
from upbound_agent_operator.store import ObjectStore

NAMESPACE = "upbound-system"
TOKEN_SECRET = "upbound-control-plane-token"


class FakeStore(ObjectStore):
    """In-memory store with resourceVersion checks and owner cascade."""

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.errors = {}
        self._uids = itertools.count(1)
        self._versions = itertools.count(1)

    # -- test helpers ---------------------------------------------------

    def fail(self, op, kind, exc):
        """Make the next ``op`` on ``kind`` raise ``exc``."""
        self.errors[(op, kind)] = exc

    def put(self, obj):
        obj = copy.deepcopy(obj)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("uid", f"uid-{next(self._uids)}")
        meta["resourceVersion"] = str(next(self._versions))
        self.objects[self._key(obj["kind"], meta["namespace"], meta["name"])] = obj
        return copy.deepcopy(obj)

    def peek(self, kind, namespace, name):
        obj = self.objects.get(self._key(kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def remove(self, kind, namespace, name):
        """Delete outside the reconciler, cascading to owned objects."""
        obj = self.objects.pop(self._key(kind, namespace, name))
        uid = obj["metadata"]["uid"]
        for key, other in list(self.objects.items()):
            owners = other["metadata"].get("ownerReferences") or []
            if any(ref["uid"] == uid for ref in owners):
                del self.objects[key]

    def mutations(self):
        return [c for c in self.calls if c[0] in ("create", "replace", "delete")]

    # -- ObjectStore ----------------------------------------------------

    def get(self, kind, namespace, name, deadline=None):
        self._enter("get", kind, namespace, name, deadline)
        obj = self.objects.get(self._key(kind, namespace, name))
        if obj is None:
            raise NotFoundError(f"{kind} {namespace}/{name} not found")
        return copy.deepcopy(obj)

    def create(self, obj, deadline=None):
        kind, namespace, name = obj["kind"], obj["metadata"]["namespace"], obj["metadata"]["name"]
        self._enter("create", kind, namespace, name, deadline)
        if self._key(kind, namespace, name) in self.objects:
            raise ConflictError(f"{kind} {namespace}/{name} already exists")
        return self.put(obj)

    def replace(self, obj, deadline=None):
        kind, namespace, name = obj["kind"], obj["metadata"]["namespace"], obj["metadata"]["name"]
        self._enter("replace", kind, namespace, name, deadline)
        current = self.objects.get(self._key(kind, namespace, name))
        if current is None:
            raise NotFoundError(f"{kind} {namespace}/{name} not found")
        if obj["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
            raise ConflictError(f"{kind} {namespace}/{name} has been modified")
        return self.put(obj)

    def delete(self, kind, namespace, name, deadline=None):
        self._enter("delete", kind, namespace, name, deadline)
        if self._key(kind, namespace, name) not in self.objects:
            raise NotFoundError(f"{kind} {namespace}/{name} not found")
        self.remove(kind, namespace, name)

    def _enter(self, op, kind, namespace, name, deadline):
        self.calls.append((op, kind, namespace, name))
        if deadline is not None:
            deadline.check()
        exc = self.errors.pop((op, kind), None)
        if exc is not None:
            raise exc

    @staticmethod
    def _key(kind, namespace, name):
        return (kind, namespace, name)


def make_configmap(namespace=NAMESPACE):
    return {
        "apiVersion": "v1",
        "kind": C.KIND_CONFIGMAP,
        "metadata": {"name": C.CONFIGMAP_UXP_VERSIONS, "namespace": namespace},
        "data": {"version": "1.2.3"},
    }


def make_secret(token="abc123", namespace=NAMESPACE, name=TOKEN_SECRET):
    data = {}
    if token is not None:
        data[C.KEY_TOKEN] = base64.b64encode(token.encode()).decode()
    return {
        "apiVersion": "v1",
        "kind": C.KIND_SECRET,
        "metadata": {"name": name, "namespace": namespace},
        "type": "Opaque",
        "data": data,
    }


def make_spec(image="upbound/upbound-agent:v0.1.0", env=None):
    return {
        "replicas": 1,
        "selector": {"matchLabels": {"app": "upbound-agent"}},
        "template": {
            "metadata": {"labels": {"app": "upbound-agent"}},
            "spec": {
                "containers": [{
                    "name": "upbound-agent",
                    "image": image,
                    "env": env if env is not None else [{"name": "DEBUG", "value": "true"}],
                }],
            },
        },
    }


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def config():
    return OperatorConfig(token_secret=TOKEN_SECRET, deployment_spec=make_spec())


@pytest.fixture
def reconciler(store, config):
    return new_reconciler(store, config)


@pytest.fixture
def req():
    return Request(NAMESPACE, TOKEN_SECRET)
