from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from typing import Any, Callable

from vcluster_api.models import ProvisioningRequest, ServiceEndpoint
from vcluster_api.proc import AdapterCommandError, CommandRunner, run_command
from vcluster_api.services.polling import NotReadyError, poll_until

logger = logging.getLogger(__name__)


def endpoint_from_service(payload: Any) -> ServiceEndpoint | None:
    """Extract the external endpoint from a ``kubectl get svc -o json`` document.

    Only the first ingress entry and the first declared port are considered.
    """
    if not isinstance(payload, dict):
        return None
    status = payload.get("status") or {}
    load_balancer = status.get("loadBalancer") if isinstance(status, dict) else None
    ingress = load_balancer.get("ingress") if isinstance(load_balancer, dict) else None
    if not isinstance(ingress, list) or not ingress or not isinstance(ingress[0], dict):
        return None
    host = ingress[0].get("ip") or ingress[0].get("hostname")
    if not host:
        return None

    spec = payload.get("spec") or {}
    ports = spec.get("ports") if isinstance(spec, dict) else None
    if not isinstance(ports, list) or not ports or not isinstance(ports[0], dict):
        return None
    port = ports[0].get("port")
    if not isinstance(port, int) or isinstance(port, bool):
        return None
    return ServiceEndpoint(host=str(host), port=port)


class KubeAdapter:
    """Read-only queries against the host cluster."""

    def __init__(self, *, binary: str = "kubectl", runner: CommandRunner | None = None) -> None:
        self._binary = binary
        self._runner = runner

    def fetch_kubeconfig_secret(self, request: ProvisioningRequest) -> bytes:
        try:
            result = run_command(
                [
                    self._binary,
                    "--kubeconfig",
                    str(request.host_kubeconfig),
                    "get",
                    "secret",
                    request.secret_name,
                    "-n",
                    request.namespace,
                    "--template={{.data.config}}",
                ],
                runner=self._runner,
                error_message=f"Failed to get secret {request.secret_name} in namespace {request.namespace}",
            )
        except AdapterCommandError as exc:
            raise NotReadyError(str(exc)) from exc

        encoded = "".join(result.stdout.split())
        if not encoded:
            raise NotReadyError(f"secret {request.secret_name} has no config data yet")
        try:
            decoded = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise NotReadyError(f"secret {request.secret_name} config is not valid base64: {exc}") from exc
        if not decoded:
            raise NotReadyError(f"secret {request.secret_name} config is empty")
        return decoded

    def fetch_service_endpoint(self, request: ProvisioningRequest) -> ServiceEndpoint:
        try:
            result = run_command(
                [
                    self._binary,
                    "--kubeconfig",
                    str(request.host_kubeconfig),
                    "get",
                    "svc",
                    request.service_name,
                    "-n",
                    request.namespace,
                    "-o",
                    "json",
                ],
                runner=self._runner,
                error_message=f"Failed to get service {request.service_name} in namespace {request.namespace}",
            )
        except AdapterCommandError as exc:
            raise NotReadyError(str(exc)) from exc

        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise NotReadyError(f"invalid service JSON for {request.service_name}: {exc}") from exc

        endpoint = endpoint_from_service(payload)
        if endpoint is None:
            raise NotReadyError(f"service {request.service_name} has no external endpoint yet")
        return endpoint


def wait_for_kubeconfig(
    kube: KubeAdapter,
    request: ProvisioningRequest,
    *,
    interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
) -> bytes:
    data = poll_until(
        lambda: kube.fetch_kubeconfig_secret(request),
        interval=interval,
        timeout=timeout,
        description=f"secret {request.secret_name} in namespace {request.namespace}",
        sleep=sleep,
    )
    logger.info("Retrieved kubeconfig from secret %s for request %s", request.secret_name, request.request_id)
    return data


def resolve_endpoint(
    kube: KubeAdapter,
    request: ProvisioningRequest,
    *,
    interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
) -> ServiceEndpoint:
    endpoint = poll_until(
        lambda: kube.fetch_service_endpoint(request),
        ready=lambda value: value is not None,
        interval=interval,
        timeout=timeout,
        description=f"external endpoint of service {request.service_name} in namespace {request.namespace}",
        sleep=sleep,
    )
    logger.info("Found external endpoint %s for request %s", endpoint.uri, request.request_id)
    return endpoint
