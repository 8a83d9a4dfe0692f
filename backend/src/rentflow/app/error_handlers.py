"""Maps domain errors onto JSON responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rentflow.domain.errors import LeaseFlowError

logger = logging.getLogger(__name__)


async def lease_flow_error_handler(request: Request, exc: LeaseFlowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed upstream: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.error_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Rejected inputs are not echoed back; NaN and Infinity cannot be rendered as JSON.
    errors = [{k: v for k, v in err.items() if k not in ("input", "ctx")} for err in exc.errors()]
    logger.info("%s %s rejected (validation_error): %d field(s)", request.method, request.url.path, len(errors))
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LeaseFlowError, lease_flow_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
