from __future__ import annotations

from dataclasses import dataclass
import os
import subprocess
from pathlib import Path
from typing import Callable, Mapping

CommandRunner = Callable[..., subprocess.CompletedProcess[str]]

# Service discovery variables injected into every pod of the host cluster.
# Left in place they make client tools talk to the cluster we run in instead
# of the one named by KUBECONFIG.
IN_CLUSTER_ENV_KEYS = ("KUBERNETES_SERVICE_HOST", "KUBERNETES_SERVICE_PORT", "KUBERNETES_PORT")
_IN_CLUSTER_ENV_PREFIXES = ("KUBERNETES_SERVICE_PORT_", "KUBERNETES_PORT_")


@dataclass(frozen=True)
class CommandResult:
    command: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class AdapterCommandError(RuntimeError):
    def __init__(
        self,
        *,
        message: str,
        result: CommandResult,
    ) -> None:
        self.result = result
        super().__init__(self._build_message(message))

    def _build_message(self, message: str) -> str:
        detail = self.result.output.strip()
        if len(detail) > 400:
            detail = f"{detail[:397]}..."
        cmd = " ".join(self.result.command)
        return (
            f"{message} (returncode={self.result.returncode}, "
            f"command={cmd!r}, detail={detail!r})"
        )


def default_runner(
    command: list[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        command,
        capture_output=True,
        text=True,
        check=False,
        cwd=cwd,
        env=dict(env) if env is not None else None,
    )


def isolated_environment(
    kubeconfig: Path | str,
    *,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Copy of ``base`` (the process environment by default) targeting ``kubeconfig``.

    In-cluster discovery variables are dropped and ``KUBECONFIG`` is set to the
    given path.
    """
    source = os.environ if base is None else base
    env = {
        key: value
        for key, value in source.items()
        if key not in IN_CLUSTER_ENV_KEYS and not key.startswith(_IN_CLUSTER_ENV_PREFIXES)
    }
    env["KUBECONFIG"] = str(kubeconfig)
    return env


def run_command(
    command: list[str],
    *,
    runner: CommandRunner | None = None,
    error_message: str,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    active_runner = runner or default_runner
    completed = active_runner(command, cwd=cwd, env=env)
    result = CommandResult(
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    if result.returncode != 0:
        raise AdapterCommandError(
            message=error_message,
            result=result,
        )
    return result
