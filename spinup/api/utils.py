import logging

from fastapi import Request
from starlette.responses import JSONResponse

from spinup.config import Settings
from spinup.provisioner import Provisioner
from spinup.services.errors import NotFoundException, SpinupException, ValidationException

ERROR_STATUS = {
    ValidationException: 400,
    NotFoundException: 404,
}

logger = logging.getLogger(__name__)


def get_provisioner(request: Request) -> Provisioner:
    return request.app.state.provisioner


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _exception_handler(request: Request, exc: Exception):
    status = ERROR_STATUS.get(type(exc), 500)
    if status >= 500:
        logger.exception("Unhandled application error for path=%s: %s", request.url.path, exc)
    else:
        logger.warning("Request failed path=%s status=%s error=%s", request.url.path, status, exc)
    return JSONResponse({"detail": str(exc)}, status_code=status)


def register_exception_handlers(app):
    app.exception_handler(SpinupException)(_exception_handler)
