from __future__ import annotations

from contextlib import asynccontextmanager
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from spinup.api import workloads
from spinup.api.utils import register_exception_handlers
from spinup.config import Settings
from spinup.logging_config import configure_logging
from spinup.provisioner import Provisioner

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, *, provisioner: Provisioner | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if errors := settings.validate():
        raise ValueError(f"Invalid configuration: {'; '.join(errors)}")
    configure_logging(level=settings.log_level)
    provisioner = provisioner or Provisioner.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Serving workloads on ports %s-%s (public host %s)",
            settings.port_range_start,
            settings.port_range_end,
            settings.public_host,
        )
        yield
        if provisioner.in_flight:
            logger.info("Waiting for %s in-flight provisioning task(s)", provisioner.in_flight)
        await provisioner.wait_idle()

    app = FastAPI(
        title="Spinup",
        description="Service for provisioning ephemeral desktop and server containers on demand",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.provisioner = provisioner
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", include_in_schema=False)
    def root() -> RedirectResponse:
        """Redirect root URL to Swagger UI docs."""
        return RedirectResponse(url="/docs")

    app.include_router(workloads.router)
    register_exception_handlers(app)
    return app


# Run with `uvicorn --factory spinup.main:create_app`; settings are read when the app is built.
if __name__ == "__main__":
    uvicorn.run("spinup.main:create_app", factory=True, host="0.0.0.0", port=3000, log_level="info")
