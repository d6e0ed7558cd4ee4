from __future__ import annotations

import logging
import time
from typing import Callable

from vcluster_api.config import Settings
from vcluster_api.logging_config import request_context
from vcluster_api.models import ProvisioningOutcome, ProvisioningRequest, Stage
from vcluster_api.services import workspaces
from vcluster_api.services.cluster_spec import build_cluster_spec, write_cluster_spec
from vcluster_api.services.errors import (
    ProvisioningFailedException,
    ValidationException,
    VClusterException,
    WorkspaceException,
)
from vcluster_api.services.kube_adapter import KubeAdapter, resolve_endpoint, wait_for_kubeconfig
from vcluster_api.services.kubeconfig import patch_kubeconfig, require_text
from vcluster_api.services.vcluster_adapter import VClusterAdapter

logger = logging.getLogger(__name__)


class ProvisioningOrchestrator:
    """Drive a virtual cluster from request admission to a usable kubeconfig.

    The orchestrator only holds configuration and adapters. All per-request
    progress lives in the :class:`ProvisioningOutcome` returned by :meth:`run`,
    so one instance can serve any number of concurrent requests.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        vcluster: VClusterAdapter | None = None,
        kube: KubeAdapter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._vcluster = vcluster or VClusterAdapter(binary=settings.vcluster_bin, debug=settings.debug)
        self._kube = kube or KubeAdapter(binary=settings.kubectl_bin)
        self._sleep = sleep

    @property
    def settings(self) -> Settings:
        return self._settings

    def admit(
        self,
        cluster_name: str,
        *,
        high_availability: bool,
        expose: bool,
        uploaded_kubeconfig: bytes | None = None,
    ) -> ProvisioningRequest:
        name = workspaces.validate_cluster_name(cluster_name)
        if uploaded_kubeconfig is None:
            default_kubeconfig = workspaces.resolve_host_kubeconfig(self._settings.default_kubeconfig)
        elif not uploaded_kubeconfig.strip():
            raise ValidationException("Uploaded kubeconfig is empty")

        request_id, workspace = workspaces.create_workspace(self._settings.requests_dir)
        if uploaded_kubeconfig is None:
            host_kubeconfig = default_kubeconfig
        else:
            host_kubeconfig = workspaces.store_uploaded_kubeconfig(workspace, uploaded_kubeconfig)

        request = ProvisioningRequest(
            request_id=request_id,
            cluster_name=name,
            high_availability=high_availability,
            expose=expose,
            host_kubeconfig=host_kubeconfig,
            workspace=workspace,
        )
        logger.info(
            "Request %s: received clusterName=%s, HA=%s, LoadBalancer=%s, kubeconfig=%s",
            request_id,
            name,
            high_availability,
            expose,
            host_kubeconfig,
        )
        return request

    def provision(
        self,
        cluster_name: str,
        *,
        high_availability: bool,
        expose: bool,
        uploaded_kubeconfig: bytes | None = None,
    ) -> ProvisioningOutcome:
        """Admit and run a request while holding the claim on its cluster name."""
        name = workspaces.validate_cluster_name(cluster_name)
        with workspaces.cluster_name_lease(self._settings.requests_dir, name):
            request = self.admit(
                name,
                high_availability=high_availability,
                expose=expose,
                uploaded_kubeconfig=uploaded_kubeconfig,
            )
            return self.run(request)

    def run(self, request: ProvisioningRequest) -> ProvisioningOutcome:
        outcome = ProvisioningOutcome(request=request)
        with request_context(request.request_id):
            stage = Stage.SPEC_WRITTEN
            try:
                spec = build_cluster_spec(
                    request.cluster_name,
                    high_availability=request.high_availability,
                    expose=request.expose,
                )
                write_cluster_spec(spec, request.spec_path)
                self._reach(outcome, stage)

                stage = Stage.PROVISIONED
                self._vcluster.create(request)
                self._reach(outcome, stage)
                self._settle(request)

                stage = Stage.SECRET_READY
                kubeconfig = wait_for_kubeconfig(
                    self._kube,
                    request,
                    interval=self._settings.secret_poll_interval,
                    timeout=self._settings.secret_poll_timeout,
                    sleep=self._sleep,
                )
                self._reach(outcome, stage)

                if request.expose:
                    stage = Stage.ENDPOINT_RESOLVED
                    endpoint = resolve_endpoint(
                        self._kube,
                        request,
                        interval=self._settings.endpoint_poll_interval,
                        timeout=self._settings.endpoint_poll_timeout,
                        sleep=self._sleep,
                    )
                    self._reach(outcome, stage)
                    stage = Stage.STORED
                    kubeconfig = patch_kubeconfig(kubeconfig, endpoint)

                stage = Stage.STORED
                require_text(kubeconfig)
                workspaces.write_kubeconfig(request.workspace, request.cluster_name, kubeconfig)
                self._reach(outcome, stage)
            except VClusterException as exc:
                self._fail(outcome, stage, exc)
            except OSError as exc:
                self._fail(outcome, stage, WorkspaceException(f"I/O error: {exc}"))
            else:
                outcome.succeed(kubeconfig)
                logger.info("Request %s: virtual cluster '%s' is ready", request.request_id, request.cluster_name)
        return outcome

    def read_kubeconfig(self, request_id: str, cluster_name: str) -> bytes:
        return workspaces.read_kubeconfig(self._settings.requests_dir, request_id, cluster_name)

    def _settle(self, request: ProvisioningRequest) -> None:
        delay = self._settings.settle_delay
        if delay <= 0:
            return
        logger.info(
            "Request %s: waiting %ss for the virtual cluster control plane to come up",
            request.request_id,
            delay,
        )
        self._sleep(delay)

    @staticmethod
    def _reach(outcome: ProvisioningOutcome, stage: Stage) -> None:
        outcome.advance(stage)
        logger.info("Request %s: reached stage %s", outcome.request.request_id, stage.value)

    @staticmethod
    def _fail(outcome: ProvisioningOutcome, stage: Stage, exc: Exception) -> None:
        logger.error(
            "Request %s: failed at stage %s: %s",
            outcome.request.request_id,
            stage.value,
            exc,
        )
        outcome.fail(stage, exc)


def ensure_ready(outcome: ProvisioningOutcome) -> bytes:
    """Return the kubeconfig of a ready outcome or raise the failure it carries."""
    if outcome.error is not None:
        raise ProvisioningFailedException(
            request_id=outcome.request.request_id,
            stage=outcome.failed_stage or outcome.stage,
            cause=outcome.error,
        ) from outcome.error
    if outcome.kubeconfig is None:
        raise RuntimeError(f"Request {outcome.request.request_id} has not finished")
    return outcome.kubeconfig
