from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import typer
import uvicorn
import yaml

from vcluster_api.config import get_settings
from vcluster_api.logging_config import configure_logging
from vcluster_api.models import ProvisioningOutcome
from vcluster_api.services.cluster_spec import build_cluster_spec, render_cluster_spec
from vcluster_api.services.errors import VClusterException
from vcluster_api.services.orchestrator import ProvisioningOrchestrator

configure_logging()
logger = logging.getLogger(__name__)
app = typer.Typer(help="vcluster provisioning CLI", pretty_exceptions_show_locals=False)


def build_orchestrator() -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(get_settings())


def _exit_for_domain_error(exc: VClusterException) -> None:
    logger.warning("CLI command failed with domain error: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _echo_yaml_entity(entity: Any) -> None:
    typer.echo(yaml.safe_dump(entity, sort_keys=False), nl=False)


def _outcome_summary(outcome: ProvisioningOutcome) -> dict[str, Any]:
    request = outcome.request
    return {
        "request_id": request.request_id,
        "cluster_name": request.cluster_name,
        "status": outcome.status.value,
        "stages": [stage.value for stage in outcome.stages],
        "kubeconfig_path": str(request.kubeconfig_path),
    }


@app.command("render-spec")
def render_spec(
    name: str,
    ha: bool = typer.Option(False, "--ha", help="Run three control plane replicas."),
    expose: bool = typer.Option(False, "--expose", help="Expose the cluster through a LoadBalancer service."),
) -> None:
    spec = build_cluster_spec(name, high_availability=ha, expose=expose)
    typer.echo(render_cluster_spec(spec).decode("utf-8"), nl=False)


@app.command("provision")
def provision(
    name: str,
    ha: bool = typer.Option(False, "--ha", help="Run three control plane replicas."),
    expose: bool = typer.Option(False, "--expose", help="Expose the cluster through a LoadBalancer service."),
    kubeconfig: Path | None = typer.Option(
        None,
        "--kubeconfig",
        help="Kubeconfig of the host cluster. Defaults to VCLUSTER_DEFAULT_KUBECONFIG.",
    ),
    print_kubeconfig: bool = typer.Option(
        False, "--print-kubeconfig", help="Print the resulting kubeconfig instead of a summary."
    ),
) -> None:
    orchestrator = build_orchestrator()
    uploaded: bytes | None = None
    if kubeconfig is not None:
        try:
            uploaded = kubeconfig.read_bytes()
        except OSError as exc:
            typer.echo(f"Error: Unable to read --kubeconfig: {exc}", err=True)
            raise typer.Exit(code=1)

    try:
        outcome = orchestrator.provision(
            name,
            high_availability=ha,
            expose=expose,
            uploaded_kubeconfig=uploaded,
        )
    except VClusterException as e:
        _exit_for_domain_error(e)

    if outcome.error is not None:
        typer.echo(
            f"Error: Provisioning of '{name}' failed at stage {outcome.failed_stage.value}: {outcome.error}",
            err=True,
        )
        raise typer.Exit(code=1)

    if print_kubeconfig:
        typer.echo(outcome.kubeconfig.decode("utf-8"), nl=False)
    else:
        _echo_yaml_entity(_outcome_summary(outcome))


@app.command("show-kubeconfig")
def show_kubeconfig(request_id: str, name: str) -> None:
    orchestrator = build_orchestrator()
    try:
        data = orchestrator.read_kubeconfig(request_id, name)
    except VClusterException as e:
        _exit_for_domain_error(e)
    typer.echo(data.decode("utf-8"), nl=False)


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    settings = get_settings()
    uvicorn.run(
        "vcluster_api.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    app()
