import logging

from starlette.requests import Request
from starlette.responses import JSONResponse

from vcluster_api.services.errors import (
    ClusterInProgressException,
    CredentialDecodeException,
    InvocationException,
    NotFoundException,
    ProvisioningFailedException,
    ReadinessTimeoutException,
    ValidationException,
    VClusterException,
    WorkspaceException,
)

ERROR_STATUS = {
    ValidationException: 400,
    NotFoundException: 404,
    ClusterInProgressException: 409,
    InvocationException: 502,
    CredentialDecodeException: 502,
    ReadinessTimeoutException: 504,
    WorkspaceException: 500,
}

logger = logging.getLogger(__name__)


def status_for(exc: Exception) -> int:
    if isinstance(exc, ProvisioningFailedException):
        return status_for(exc.cause)
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


def _exception_handler(request: Request, exc: Exception):
    status = status_for(exc)
    if status >= 500:
        logger.error("Request failed path=%s status=%s error=%s", request.url.path, status, exc, exc_info=exc)
    else:
        logger.warning("Request failed path=%s status=%s error=%s", request.url.path, status, exc)
    body = {"detail": str(exc)}
    if isinstance(exc, ProvisioningFailedException):
        body["stage"] = exc.stage.value
        body["request_id"] = exc.request_id
    return JSONResponse(body, status_code=status)


def register_exception_handlers(app):
    app.exception_handler(VClusterException)(_exception_handler)
