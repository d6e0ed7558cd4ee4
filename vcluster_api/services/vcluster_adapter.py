from __future__ import annotations

import logging
from typing import Mapping

from vcluster_api.models import ProvisioningRequest
from vcluster_api.proc import AdapterCommandError, CommandResult, CommandRunner, isolated_environment, run_command
from vcluster_api.services.errors import InvocationException

logger = logging.getLogger(__name__)


class VClusterAdapter:
    """Adapter for the ``vcluster`` CLI."""

    def __init__(
        self,
        *,
        binary: str = "vcluster",
        debug: bool = False,
        runner: CommandRunner | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self._binary = binary
        self._debug = debug
        self._runner = runner
        self._base_env = base_env

    def create_command(self, request: ProvisioningRequest) -> list[str]:
        cmd = [
            self._binary,
            "create",
            request.cluster_name,
            "--config",
            request.spec_path.name,
            "--connect=false",
            "--skip-wait",
        ]
        if self._debug:
            cmd.append("--debug")
        if request.expose:
            cmd.append("--expose")
        return cmd

    def create(self, request: ProvisioningRequest) -> CommandResult:
        cmd = self.create_command(request)
        logger.info(
            "Creating virtual cluster '%s' for request %s in %s",
            request.cluster_name,
            request.request_id,
            request.workspace,
        )
        logger.debug("Executing %s", cmd)
        try:
            result = run_command(
                cmd,
                runner=self._runner,
                error_message=f"Failed to create virtual cluster {request.cluster_name}",
                cwd=request.workspace,
                env=isolated_environment(request.host_kubeconfig, base=self._base_env),
            )
        except AdapterCommandError as exc:
            logger.debug("vcluster create output:\n%s", exc.result.output)
            raise InvocationException(str(exc), result=exc.result) from exc
        logger.debug("vcluster create finished, output:\n%s", result.output)
        return result
