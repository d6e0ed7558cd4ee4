from __future__ import annotations

from contextlib import contextmanager
import logging
import os
from pathlib import Path
import re
import secrets
import time
from typing import Iterator

from vcluster_api.models import NAMESPACE_PREFIX, UPLOADED_KUBECONFIG_FILENAME, kubeconfig_path_for
from vcluster_api.services.errors import (
    ClusterInProgressException,
    NotFoundException,
    ValidationException,
    WorkspaceException,
)

logger = logging.getLogger(__name__)

DNS_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
REQUEST_ID_RE = re.compile(r"^[0-9]+-[0-9a-z]{6}$")

MAX_DNS_LABEL_LEN = 63
# The namespace "vcluster-<name>" must itself be a DNS label.
MAX_CLUSTER_NAME_LEN = MAX_DNS_LABEL_LEN - len(NAMESPACE_PREFIX)
RANDOM_SUFFIX_LEN = 6
INFLIGHT_DIRNAME = ".inflight"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def generate_suffix6() -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(RANDOM_SUFFIX_LEN))


def generate_request_id() -> str:
    return f"{time.time_ns()}-{generate_suffix6()}"


def validate_cluster_name(name: str | None) -> str:
    candidate = (name or "").strip()
    if not candidate:
        raise ValidationException("clusterName is required")
    if len(candidate) > MAX_CLUSTER_NAME_LEN or not DNS_LABEL_RE.fullmatch(candidate):
        raise ValidationException(
            f"clusterName must be a lowercase DNS label of at most {MAX_CLUSTER_NAME_LEN} characters"
        )
    return candidate


def validate_request_id(request_id: str | None) -> str:
    if not request_id:
        raise ValidationException("Request ID not set")
    if not REQUEST_ID_RE.fullmatch(request_id):
        raise ValidationException("Request ID is malformed")
    return request_id


def create_workspace(requests_dir: Path) -> tuple[str, Path]:
    """Allocate a fresh request id and its private working directory."""
    try:
        requests_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise WorkspaceException(f"Error creating requests directory {requests_dir}: {exc}") from exc

    while True:
        request_id = generate_request_id()
        workspace = requests_dir / request_id
        try:
            workspace.mkdir(exist_ok=False)
        except FileExistsError:
            logger.debug("Workspace %s already exists; drawing another request id", workspace)
            continue
        except OSError as exc:
            raise WorkspaceException(f"Error creating working directory {workspace}: {exc}") from exc
        logger.debug("Created workspace %s", workspace)
        return request_id, workspace.resolve()


def store_uploaded_kubeconfig(workspace: Path, data: bytes) -> Path:
    path = workspace / UPLOADED_KUBECONFIG_FILENAME
    try:
        path.write_bytes(data)
    except OSError as exc:
        raise WorkspaceException(f"Error saving uploaded kubeconfig: {exc}") from exc
    return path.resolve()


def resolve_host_kubeconfig(default_kubeconfig: Path) -> Path:
    if not default_kubeconfig.is_file():
        raise ValidationException(
            f"No kubeconfig uploaded and default {default_kubeconfig} not found"
        )
    return default_kubeconfig.resolve()


def write_kubeconfig(workspace: Path, cluster_name: str, data: bytes) -> Path:
    path = kubeconfig_path_for(workspace, cluster_name)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as exc:
        raise WorkspaceException(f"Failed to write kubeconfig file {path}: {exc}") from exc
    logger.info("Kubeconfig written to %s", path)
    return path


def read_kubeconfig(requests_dir: Path, request_id: str, cluster_name: str) -> bytes:
    validate_request_id(request_id)
    validate_cluster_name(cluster_name)
    path = kubeconfig_path_for(requests_dir / request_id, cluster_name)
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise NotFoundException(
            f"No kubeconfig for cluster '{cluster_name}' in request {request_id}"
        ) from exc
    except OSError as exc:
        raise WorkspaceException(f"Error reading kubeconfig {path}: {exc}") from exc


@contextmanager
def cluster_name_lease(requests_dir: Path, cluster_name: str) -> Iterator[Path]:
    """Hold an exclusive claim on ``cluster_name`` for the duration of the block.

    The claim is a lock file created with O_EXCL, so it holds across worker
    processes sharing ``requests_dir``.
    """
    lock_dir = requests_dir / INFLIGHT_DIRNAME
    lock_path = lock_dir / f"{cluster_name}.lock"
    try:
        lock_dir.mkdir(parents=True, exist_ok=True)
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError as exc:
        raise ClusterInProgressException(
            f"A provisioning request for cluster '{cluster_name}' is already in progress"
        ) from exc
    except OSError as exc:
        raise WorkspaceException(f"Error claiming cluster name {cluster_name}: {exc}") from exc
    try:
        os.write(fd, str(os.getpid()).encode("ascii"))
    finally:
        os.close(fd)

    logger.debug("Claimed cluster name '%s'", cluster_name)
    try:
        yield lock_path
    finally:
        lock_path.unlink(missing_ok=True)
        logger.debug("Released cluster name '%s'", cluster_name)
