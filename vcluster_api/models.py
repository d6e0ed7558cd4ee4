from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

NAMESPACE_PREFIX = "vcluster-"
SECRET_PREFIX = "vc-"
SPEC_FILENAME = "vcluster.yaml"
UPLOADED_KUBECONFIG_FILENAME = "uploaded.yaml"
KUBECONFIG_FILENAME = "kubeconfig.yaml"


class Stage(str, Enum):
    CREATED = "created"
    SPEC_WRITTEN = "spec_written"
    PROVISIONED = "provisioned"
    SECRET_READY = "secret_ready"
    ENDPOINT_RESOLVED = "endpoint_resolved"
    STORED = "stored"
    DONE = "done"


class OutcomeStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class OutcomeTransitionError(RuntimeError):
    pass


def kubeconfig_path_for(workspace: Path, cluster_name: str) -> Path:
    return workspace / ".vcluster" / cluster_name / KUBECONFIG_FILENAME


@dataclass(frozen=True)
class ProvisioningRequest:
    request_id: str
    cluster_name: str
    high_availability: bool
    expose: bool
    host_kubeconfig: Path
    workspace: Path

    @property
    def namespace(self) -> str:
        return f"{NAMESPACE_PREFIX}{self.cluster_name}"

    @property
    def secret_name(self) -> str:
        return f"{SECRET_PREFIX}{self.cluster_name}"

    @property
    def service_name(self) -> str:
        return self.cluster_name

    @property
    def spec_path(self) -> Path:
        return self.workspace / SPEC_FILENAME

    @property
    def kubeconfig_path(self) -> Path:
        return kubeconfig_path_for(self.workspace, self.cluster_name)


@dataclass(frozen=True)
class ClusterSpec:
    name: str
    replicas: int
    service_type: Optional[str] = None
    api_version: str = "v1"
    kind: str = "VirtualCluster"


@dataclass(frozen=True)
class ServiceEndpoint:
    host: str
    port: int
    scheme: str = "https"

    @property
    def uri(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port == 443:
            return f"{self.scheme}://{host}"
        return f"{self.scheme}://{host}:{self.port}"


@dataclass
class ProvisioningOutcome:
    """Progress of a single provisioning flow.

    Owned by exactly one orchestration run. Stages only move forward and a
    ready or failed outcome never changes again.
    """

    request: ProvisioningRequest
    stages: list[Stage] = field(default_factory=lambda: [Stage.CREATED])
    kubeconfig: Optional[bytes] = None
    failed_stage: Optional[Stage] = None
    error: Optional[Exception] = None

    @property
    def status(self) -> OutcomeStatus:
        if self.error is not None:
            return OutcomeStatus.FAILED
        if self.kubeconfig is not None:
            return OutcomeStatus.READY
        return OutcomeStatus.PENDING

    @property
    def stage(self) -> Stage:
        return self.stages[-1]

    @property
    def is_terminal(self) -> bool:
        return self.status is not OutcomeStatus.PENDING

    def advance(self, stage: Stage) -> None:
        self._ensure_pending()
        order = list(Stage)
        if order.index(stage) <= order.index(self.stage):
            raise OutcomeTransitionError(f"Cannot move from {self.stage.value} back to {stage.value}")
        self.stages.append(stage)

    def succeed(self, kubeconfig: bytes) -> None:
        self.advance(Stage.DONE)
        self.kubeconfig = kubeconfig

    def fail(self, stage: Stage, error: Exception) -> None:
        self._ensure_pending()
        self.failed_stage = stage
        self.error = error

    def _ensure_pending(self) -> None:
        if self.is_terminal:
            raise OutcomeTransitionError(
                f"Outcome for request {self.request.request_id} is already {self.status.value}"
            )


class VClusterResponse(BaseModel):
    kubeconfig: str
    request_id: str
    cluster_name: str
