"""Exceptions raised by the object store and the reconciler."""

from typing import Optional

# Messages used to wrap store errors, one per failing reconcile step
ERR_GET_VERSIONS_CONFIGMAP = "failed to get versions config map"
ERR_GET_SECRET = "failed to get control plane token secret"
ERR_DELETE_DEPLOYMENT = "failed to delete agent deployment"
ERR_SYNC_DEPLOYMENT = "failed to sync agent deployment"


class ConfigError(Exception):
    """Invalid startup configuration."""


class StoreError(Exception):
    """An object store call failed."""


class NotFoundError(StoreError):
    """The requested object does not exist."""


class ConflictError(StoreError):
    """A write lost an optimistic concurrency race (stale resourceVersion)."""


class DeadlineExceededError(StoreError):
    """The reconcile deadline expired before or during a store call."""


class ReconcileError(Exception):
    """A reconcile failed and should be retried.

    Wraps the underlying store error with a fixed message describing the
    step that failed.
    """

    message = "reconcile failed"

    def __init__(self, cause: Optional[BaseException] = None, message: Optional[str] = None):
        if message is not None:
            self.message = message
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"


class VersionsRecordReadError(ReconcileError):
    message = ERR_GET_VERSIONS_CONFIGMAP


class TokenSecretReadError(ReconcileError):
    message = ERR_GET_SECRET


class WorkloadDeleteError(ReconcileError):
    message = ERR_DELETE_DEPLOYMENT


class WorkloadSyncError(ReconcileError):
    message = ERR_SYNC_DEPLOYMENT
