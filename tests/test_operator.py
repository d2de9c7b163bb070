"""Tests for the kopf wiring: retries and handler registration."""
from unittest.mock import MagicMock

import kopf
import pytest

from conftest import NAMESPACE, TOKEN_SECRET, make_configmap, make_secret, make_spec
from upbound_agent_operator import constants as C
from upbound_agent_operator.config import OperatorConfig
from upbound_agent_operator.errors import StoreError, WorkloadSyncError
from upbound_agent_operator.operator import handle_request, register, request_for_event
from upbound_agent_operator.reconciler import Request, Result


@pytest.fixture
def retry_config():
    return OperatorConfig(
        token_secret=TOKEN_SECRET,
        deployment_spec=make_spec(),
        retry_limit=4,
        retry_backoff=1,
        retry_backoff_max=3,
    )


def test_success_needs_one_attempt(store, reconciler, req, retry_config):
    store.put(make_configmap())
    store.put(make_secret())
    sleeps = []

    assert handle_request(reconciler, retry_config, req, sleep=sleeps.append) is True
    assert sleeps == []
    assert store.peek(C.KIND_DEPLOYMENT, NAMESPACE, C.DEPLOYMENT_UPBOUND_AGENT) is not None


def test_transient_error_is_retried_with_fresh_state(store, reconciler, req, retry_config):
    store.put(make_configmap())
    store.put(make_secret())
    store.fail("create", C.KIND_DEPLOYMENT, StoreError("etcd leader changed"))
    sleeps = []

    assert handle_request(reconciler, retry_config, req, sleep=sleeps.append) is True
    assert sleeps == [1]
    assert store.peek(C.KIND_DEPLOYMENT, NAMESPACE, C.DEPLOYMENT_UPBOUND_AGENT) is not None


def test_gives_up_after_retry_limit(req, retry_config):
    reconciler = MagicMock()
    reconciler.reconcile.side_effect = WorkloadSyncError(StoreError("down"))
    sleeps = []

    assert handle_request(reconciler, retry_config, req, sleep=sleeps.append) is False
    assert reconciler.reconcile.call_count == 4
    assert sleeps == [1, 2, 3]


def test_requeue_hint_is_honoured(req, retry_config):
    reconciler = MagicMock()
    reconciler.reconcile.side_effect = [Result(requeue_after=7), Result()]
    sleeps = []

    assert handle_request(reconciler, retry_config, req, sleep=sleeps.append) is True
    assert sleeps == [7]


class TestRequestForEvent:
    def test_secret_event_reconciles_that_secret(self, config):
        assert request_for_event(C.KIND_SECRET, NAMESPACE, TOKEN_SECRET, config) == Request(NAMESPACE, TOKEN_SECRET)

    def test_deployment_event_reconciles_token_secret(self, config):
        request = request_for_event(C.KIND_DEPLOYMENT, NAMESPACE, C.DEPLOYMENT_UPBOUND_AGENT, config)
        assert request == Request(NAMESPACE, TOKEN_SECRET)


class TestRegister:
    @pytest.fixture
    def handlers(self, config):
        reconciler = MagicMock()
        reconciler.reconcile.return_value = Result()
        registry = kopf.OperatorRegistry()
        register(registry, reconciler, config)
        found = {}
        for handler in registry._watching.get_all_handlers():
            for suffix in ("on_token_secret_event", "on_agent_deployment_event"):
                if handler.id.endswith(suffix):
                    found[suffix] = handler
        assert set(found) == {"on_token_secret_event", "on_agent_deployment_event"}
        return reconciler, found

    def test_deployment_event_reads_configured_secret(self, handlers):
        reconciler, found = handlers

        found["on_agent_deployment_event"].fn(
            name=C.DEPLOYMENT_UPBOUND_AGENT, namespace=NAMESPACE, type="MODIFIED",
        )

        reconciler.reconcile.assert_called_once_with(None, Request(NAMESPACE, TOKEN_SECRET))

    def test_secret_event_reads_event_secret(self, handlers):
        reconciler, found = handlers

        found["on_token_secret_event"].fn(name=TOKEN_SECRET, namespace=NAMESPACE, type="DELETED")

        reconciler.reconcile.assert_called_once_with(None, Request(NAMESPACE, TOKEN_SECRET))

    def test_filters_accept_only_watched_names(self, handlers):
        _, found = handlers
        secret = found["on_token_secret_event"]
        deployment = found["on_agent_deployment_event"]

        assert secret.when(name=TOKEN_SECRET) is True
        assert secret.when(name="other") is False
        assert secret.when(name=C.DEPLOYMENT_UPBOUND_AGENT) is False
        assert deployment.when(name=C.DEPLOYMENT_UPBOUND_AGENT) is True
        assert deployment.when(name="other") is False
        assert deployment.when(name=TOKEN_SECRET) is False
