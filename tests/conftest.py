import pytest
from starlette.testclient import TestClient
from typer.testing import CliRunner

from tests.provisioner_utils import HOST_ENV, HOST_KUBECONFIG, FakeCluster
from vcluster_api.api.vclusters import get_orchestrator
from vcluster_api.config import Settings
from vcluster_api.main import create_app
from vcluster_api.services.kube_adapter import KubeAdapter
from vcluster_api.services.orchestrator import ProvisioningOrchestrator
from vcluster_api.services.vcluster_adapter import VClusterAdapter


@pytest.fixture
def host_kubeconfig(tmp_path):
    path = tmp_path / "host-kubeconfig.yaml"
    path.write_text(HOST_KUBECONFIG)
    return path


@pytest.fixture
def settings(tmp_path, host_kubeconfig):
    return Settings(
        requests_dir=tmp_path / "requests",
        default_kubeconfig=host_kubeconfig,
        debug=False,
    )


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator_factory(settings, sleeps):
    def build(cluster: FakeCluster, *, settings_override: Settings | None = None) -> ProvisioningOrchestrator:
        return ProvisioningOrchestrator(
            settings_override or settings,
            vcluster=VClusterAdapter(runner=cluster, base_env=HOST_ENV),
            kube=KubeAdapter(runner=cluster),
            sleep=sleeps.append,
        )

    return build


@pytest.fixture
def orchestrator(orchestrator_factory, cluster):
    return orchestrator_factory(cluster)


@pytest.fixture
def client(settings, orchestrator):
    app = create_app(settings)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def cli_runner(monkeypatch, orchestrator):
    import vcluster_api.cli as cli

    monkeypatch.setattr(cli, "build_orchestrator", lambda: orchestrator)
    return CliRunner(), cli.app
