from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, File, Form, Query, Response, UploadFile

from vcluster_api.config import get_settings
from vcluster_api.models import KUBECONFIG_FILENAME, VClusterResponse
from vcluster_api.services.errors import ValidationException
from vcluster_api.services.orchestrator import ProvisioningOrchestrator, ensure_ready

REQUEST_ID_COOKIE = "reqid"
FORM_ENABLED = "on"

logger = logging.getLogger(__name__)

router = APIRouter(tags=["vclusters"])


def get_orchestrator() -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(get_settings())


def _read_upload(upload: Optional[UploadFile]) -> Optional[bytes]:
    if upload is None or not upload.filename:
        return None
    try:
        return upload.file.read()
    finally:
        upload.file.close()


@router.post("/api/vcluster", response_model=VClusterResponse)
def create_vcluster(
    response: Response,
    cluster_name: str = Form("", alias="clusterName"),
    ha: Optional[str] = Form(None),
    loadbalancer: Optional[str] = Form(None),
    kubeconfig_file: Optional[UploadFile] = File(None, alias="kubeconfigFile"),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
) -> VClusterResponse:
    # Synchronous on purpose: each request blocks its own worker thread while
    # the cluster comes up.
    outcome = orchestrator.provision(
        cluster_name,
        high_availability=ha == FORM_ENABLED,
        expose=loadbalancer == FORM_ENABLED,
        uploaded_kubeconfig=_read_upload(kubeconfig_file),
    )
    kubeconfig = ensure_ready(outcome)
    request = outcome.request
    response.set_cookie(REQUEST_ID_COOKIE, request.request_id, path="/")
    return VClusterResponse(
        kubeconfig=kubeconfig.decode("utf-8"),
        request_id=request.request_id,
        cluster_name=request.cluster_name,
    )


@router.get("/download")
def download_kubeconfig(
    cluster_name: str = Query("", alias="clusterName"),
    request_id: Optional[str] = Query(None, alias="requestId"),
    reqid: Optional[str] = Cookie(None),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
) -> Response:
    if not cluster_name:
        raise ValidationException("clusterName query parameter required")
    resolved_request_id = request_id or reqid
    if not resolved_request_id:
        raise ValidationException("Request ID not set")
    data = orchestrator.read_kubeconfig(resolved_request_id, cluster_name)
    logger.debug("Serving kubeconfig for request %s cluster %s", resolved_request_id, cluster_name)
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename={KUBECONFIG_FILENAME}"},
    )
