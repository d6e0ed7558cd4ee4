from __future__ import annotations

from pathlib import Path

import pytest

from vcluster_api.models import (
    OutcomeStatus,
    OutcomeTransitionError,
    ProvisioningOutcome,
    ProvisioningRequest,
    Stage,
)


@pytest.fixture
def request_():
    return ProvisioningRequest(
        request_id="1700000000000000000-abc123",
        cluster_name="demo",
        high_availability=True,
        expose=False,
        host_kubeconfig=Path("/secrets/host.yaml"),
        workspace=Path("/work/requests/1700000000000000000-abc123"),
    )


def test_request_derived_names(request_):
    assert request_.namespace == "vcluster-demo"
    assert request_.secret_name == "vc-demo"
    assert request_.service_name == "demo"
    assert request_.spec_path == request_.workspace / "vcluster.yaml"
    assert request_.kubeconfig_path == request_.workspace / ".vcluster" / "demo" / "kubeconfig.yaml"


def test_outcome_moves_forward_to_ready(request_):
    outcome = ProvisioningOutcome(request=request_)
    assert outcome.status is OutcomeStatus.PENDING

    outcome.advance(Stage.SPEC_WRITTEN)
    outcome.advance(Stage.PROVISIONED)
    outcome.succeed(b"kind: Config\n")

    assert outcome.status is OutcomeStatus.READY
    assert outcome.stage is Stage.DONE


def test_outcome_cannot_go_back(request_):
    outcome = ProvisioningOutcome(request=request_)
    outcome.advance(Stage.PROVISIONED)

    with pytest.raises(OutcomeTransitionError):
        outcome.advance(Stage.SPEC_WRITTEN)
    with pytest.raises(OutcomeTransitionError):
        outcome.advance(Stage.PROVISIONED)


def test_terminal_outcomes_are_final(request_):
    outcome = ProvisioningOutcome(request=request_)
    outcome.fail(Stage.PROVISIONED, RuntimeError("boom"))

    assert outcome.status is OutcomeStatus.FAILED
    with pytest.raises(OutcomeTransitionError):
        outcome.advance(Stage.SECRET_READY)
    with pytest.raises(OutcomeTransitionError):
        outcome.succeed(b"data")
    with pytest.raises(OutcomeTransitionError):
        outcome.fail(Stage.SECRET_READY, RuntimeError("again"))
