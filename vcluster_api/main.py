from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from vcluster_api.api import vclusters
from vcluster_api.api.utils import register_exception_handlers
from vcluster_api.config import Settings, get_settings


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="vcluster API",
        description="Service for provisioning virtual Kubernetes clusters and handing out their kubeconfig",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/", include_in_schema=False)
    def root() -> RedirectResponse:
        """Redirect root URL to Swagger UI docs."""
        return RedirectResponse(url="/docs")

    app.include_router(vclusters.router)
    register_exception_handlers(app)
    return app


app = create_app()

if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run("vcluster_api.main:app", host=_settings.host, port=_settings.port, log_level="info")
