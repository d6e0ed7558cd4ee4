from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vcluster_api.models import Stage
    from vcluster_api.proc import CommandResult


class VClusterException(Exception):
    pass


class ValidationException(VClusterException):
    pass


class NotFoundException(VClusterException):
    pass


class ClusterInProgressException(VClusterException):
    pass


class InvocationException(VClusterException):
    """The cluster lifecycle tool exited non-zero."""

    def __init__(self, message: str, *, result: CommandResult) -> None:
        self.result = result
        super().__init__(message)

    @property
    def output(self) -> str:
        return self.result.output


class ReadinessTimeoutException(VClusterException):
    """A poller ran out of budget before the awaited resource showed up."""

    def __init__(self, message: str, *, attempts: int, timeout: float) -> None:
        self.attempts = attempts
        self.timeout = timeout
        super().__init__(message)


class CredentialDecodeException(VClusterException):
    pass


class WorkspaceException(VClusterException):
    pass


class ProvisioningFailedException(VClusterException):
    def __init__(self, *, request_id: str, stage: Stage, cause: Exception) -> None:
        self.request_id = request_id
        self.stage = stage
        self.cause = cause
        super().__init__(f"Provisioning failed at stage '{stage.value}': {cause}")
