from __future__ import annotations

import base64
import json
from pathlib import Path
import subprocess

import pytest

from tests.provisioner_utils import HOST_ENV, service_json
from vcluster_api.models import ProvisioningRequest, ServiceEndpoint
from vcluster_api.proc import AdapterCommandError, isolated_environment, run_command
from vcluster_api.services.errors import InvocationException
from vcluster_api.services.kube_adapter import KubeAdapter, endpoint_from_service
from vcluster_api.services.polling import NotReadyError
from vcluster_api.services.vcluster_adapter import VClusterAdapter


def _result(*, args: list[str], returncode: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=args, returncode=returncode, stdout=stdout, stderr=stderr)


def _request(tmp_path: Path, *, expose: bool = False) -> ProvisioningRequest:
    return ProvisioningRequest(
        request_id="1700000000000000000-abc123",
        cluster_name="demo",
        high_availability=False,
        expose=expose,
        host_kubeconfig=Path("/secrets/host.yaml"),
        workspace=tmp_path,
    )


def test_vcluster_create_runs_in_workspace_with_isolated_env(tmp_path) -> None:
    seen: dict = {}

    def runner(cmd: list[str], *, cwd=None, env=None) -> subprocess.CompletedProcess[str]:
        seen.update(cmd=cmd, cwd=cwd, env=env)
        return _result(args=cmd, returncode=0, stdout="created")

    adapter = VClusterAdapter(runner=runner, debug=True, base_env=HOST_ENV)
    out = adapter.create(_request(tmp_path, expose=True))

    assert out.stdout == "created"
    assert seen["cmd"] == [
        "vcluster",
        "create",
        "demo",
        "--config",
        "vcluster.yaml",
        "--connect=false",
        "--skip-wait",
        "--debug",
        "--expose",
    ]
    assert seen["cwd"] == tmp_path
    assert seen["env"]["KUBECONFIG"] == "/secrets/host.yaml"
    assert seen["env"]["PATH"] == "/usr/bin:/bin"
    assert not [key for key in seen["env"] if key.startswith("KUBERNETES_")]


def test_vcluster_create_without_optional_flags(tmp_path) -> None:
    adapter = VClusterAdapter(binary="/opt/bin/vcluster", debug=False)

    cmd = adapter.create_command(_request(tmp_path))

    assert cmd[0] == "/opt/bin/vcluster"
    assert "--debug" not in cmd
    assert "--expose" not in cmd


def test_vcluster_create_failure_carries_output(tmp_path) -> None:
    def runner(cmd: list[str], **_) -> subprocess.CompletedProcess[str]:
        return _result(args=cmd, returncode=1, stdout="installing chart", stderr="fatal: namespace is terminating")

    adapter = VClusterAdapter(runner=runner, base_env={})
    with pytest.raises(InvocationException) as exc_info:
        adapter.create(_request(tmp_path))

    assert exc_info.value.result.returncode == 1
    assert "installing chart" in exc_info.value.output
    assert "namespace is terminating" in exc_info.value.output
    assert isinstance(exc_info.value.__cause__, AdapterCommandError)


def test_fetch_secret_decodes_payload(tmp_path) -> None:
    calls: list[list[str]] = []

    def runner(cmd: list[str], **_) -> subprocess.CompletedProcess[str]:
        calls.append(cmd)
        return _result(args=cmd, returncode=0, stdout=base64.b64encode(b"apiVersion: v1\n").decode())

    data = KubeAdapter(runner=runner).fetch_kubeconfig_secret(_request(tmp_path))

    assert data == b"apiVersion: v1\n"
    assert calls[0] == [
        "kubectl",
        "--kubeconfig",
        "/secrets/host.yaml",
        "get",
        "secret",
        "vc-demo",
        "-n",
        "vcluster-demo",
        "--template={{.data.config}}",
    ]


@pytest.mark.parametrize(
    ("returncode", "stdout"),
    [
        (1, ""),
        (0, ""),
        (0, "<no value>"),
        (0, "not*base64"),
    ],
)
def test_fetch_secret_not_ready(tmp_path, returncode, stdout) -> None:
    def runner(cmd: list[str], **_) -> subprocess.CompletedProcess[str]:
        return _result(args=cmd, returncode=returncode, stdout=stdout, stderr="secrets not found")

    with pytest.raises(NotReadyError):
        KubeAdapter(runner=runner).fetch_kubeconfig_secret(_request(tmp_path))


def test_fetch_service_endpoint(tmp_path) -> None:
    def runner(cmd: list[str], **_) -> subprocess.CompletedProcess[str]:
        assert cmd[3:] == ["get", "svc", "demo", "-n", "vcluster-demo", "-o", "json"]
        return _result(args=cmd, returncode=0, stdout=service_json(ip="203.0.113.9", port=6443))

    endpoint = KubeAdapter(runner=runner).fetch_service_endpoint(_request(tmp_path))

    assert endpoint == ServiceEndpoint(host="203.0.113.9", port=6443)
    assert endpoint.uri == "https://203.0.113.9:6443"


@pytest.mark.parametrize(
    ("returncode", "stdout"),
    [
        (1, ""),
        (0, "{not json"),
        (0, service_json(port=443)),
        (0, service_json(ip="203.0.113.9", port=None)),
    ],
)
def test_fetch_service_endpoint_not_ready(tmp_path, returncode, stdout) -> None:
    def runner(cmd: list[str], **_) -> subprocess.CompletedProcess[str]:
        return _result(args=cmd, returncode=returncode, stdout=stdout)

    with pytest.raises(NotReadyError):
        KubeAdapter(runner=runner).fetch_service_endpoint(_request(tmp_path))


def test_endpoint_prefers_ip_and_first_entries() -> None:
    payload = {
        "status": {
            "loadBalancer": {
                "ingress": [
                    {"ip": "198.51.100.1", "hostname": "lb.example.com"},
                    {"ip": "198.51.100.2"},
                ]
            }
        },
        "spec": {"ports": [{"port": 443}, {"port": 8443}]},
    }

    assert endpoint_from_service(payload) == ServiceEndpoint(host="198.51.100.1", port=443)


def test_endpoint_falls_back_to_hostname() -> None:
    payload = json.loads(service_json(hostname="abc.elb.amazonaws.com", port=443))

    endpoint = endpoint_from_service(payload)

    assert endpoint is not None
    assert endpoint.uri == "https://abc.elb.amazonaws.com"


def test_endpoint_ignores_first_ingress_without_address() -> None:
    payload = {
        "status": {"loadBalancer": {"ingress": [{}, {"ip": "198.51.100.2"}]}},
        "spec": {"ports": [{"port": 443}]},
    }

    assert endpoint_from_service(payload) is None


@pytest.mark.parametrize(
    ("port", "uri"),
    [(443, "https://203.0.113.9"), (6443, "https://203.0.113.9:6443"), (80, "https://203.0.113.9:80")],
)
def test_endpoint_uri_elides_default_port(port, uri) -> None:
    assert ServiceEndpoint(host="203.0.113.9", port=port).uri == uri


@pytest.mark.parametrize(
    ("port", "uri"),
    [(443, "https://[2001:db8::1]"), (6443, "https://[2001:db8::1]:6443")],
)
def test_endpoint_uri_brackets_ipv6_hosts(port, uri) -> None:
    assert ServiceEndpoint(host="2001:db8::1", port=port).uri == uri


def test_isolated_environment_drops_in_cluster_variables() -> None:
    env = isolated_environment("/tmp/kc.yaml", base=HOST_ENV)

    assert env == {"PATH": "/usr/bin:/bin", "HOME": "/root", "KUBECONFIG": "/tmp/kc.yaml"}


def test_run_command_reports_command_and_output() -> None:
    def runner(cmd: list[str], **_) -> subprocess.CompletedProcess[str]:
        return _result(args=cmd, returncode=1, stderr="Unable to connect to the server: i/o timeout")

    with pytest.raises(AdapterCommandError) as exc_info:
        run_command(["kubectl", "get", "ns"], runner=runner, error_message="Failed")
    assert exc_info.value.result.returncode == 1
    assert "kubectl get ns" in str(exc_info.value)
    assert "i/o timeout" in str(exc_info.value)
