import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from querygate.agents.utils.errors import GatewayError


logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers for the FastAPI application."""

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        logger.info(f"{request.method} {request.url.path} failed with {exc.kind.value}")
        return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})
