from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from mjml_api import __version__
from mjml_api.api.models import MessageResponse
from mjml_api.api.v1.render import RENDER_PATH
from mjml_api.api.v1.render import router as v1_router
from mjml_api.auth import AuthGate
from mjml_api.compiler import Compiler, CompilerUnavailable, NodeMjmlCompiler
from mjml_api.config import AuthMode, ServiceConfig, load_service_config
from mjml_api.limits import BodySizeLimitMiddleware

logger = logging.getLogger(__name__)

HEALTH_PATHS: tuple[str, ...] = ("/healthz", "/livez", "/readyz")
NOT_FOUND_MESSAGE = f"You're probably looking for {RENDER_PATH}"


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=MessageResponse(message=message).model_dump(mode="json"),
    )


def create_app(config: ServiceConfig | None = None, *, compiler: Compiler | None = None) -> FastAPI:
    """Build the render service.

    ``config`` defaults to the environment; ``compiler`` defaults to the node/mjml
    bridge configured by ``config.compiler``.
    """

    service_config = config if config is not None else load_service_config()
    service_compiler = compiler if compiler is not None else NodeMjmlCompiler(
        service_config.compiler
    )

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        logger.info("mjml render API starting up")
        logger.info(f"Using configuration: {service_config.redacted()}")

        render = service_config.render
        if render.beautify or render.minify:
            logger.warning("beautify/minify are deprecated and ignored by mjml >= 4")

        auth = service_config.authentication
        if auth.enabled and auth.mode is AuthMode.BASIC and (
            auth.basic.username is None or auth.basic.password is None
        ):
            logger.warning("Basic authentication enabled without credentials; all renders fail")
        if auth.enabled and auth.mode is AuthMode.TOKEN and auth.token.secret is None:
            logger.warning("Token authentication enabled without a secret; all renders fail")

        yield
        logger.info("mjml render API shut down")

    app = FastAPI(title="MJML Render API", version=__version__, lifespan=_lifespan)

    app.state.service_config = service_config
    app.state.auth_gate = AuthGate(service_config.authentication)
    app.state.compiler = service_compiler

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} - {response.status_code}")
        return response

    # Outermost: oversized bodies are refused before auth or routing.
    app.add_middleware(BodySizeLimitMiddleware, max_body=service_config.max_body)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> Response:
        # Unknown routes and wrong methods both point callers at the render endpoint.
        if exc.status_code in (404, 405):
            return _message(404, NOT_FOUND_MESSAGE)
        # Auth and size rejections carry no body.
        if exc.status_code in (401, 413):
            return Response(status_code=exc.status_code)
        return _message(
            exc.status_code,
            exc.detail if isinstance(exc.detail, str) else "HTTP error",
        )

    @app.exception_handler(CompilerUnavailable)
    async def _compiler_unavailable_handler(
        request: Request, exc: CompilerUnavailable
    ) -> JSONResponse:
        logger.error(f"Compiler unavailable: {exc}")
        return _message(500, "Internal server error")

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return _message(500, "Internal server error")

    app.include_router(v1_router)

    async def _health() -> Response:
        return Response(status_code=200)

    for path in HEALTH_PATHS:
        app.add_api_route(path, _health, methods=["GET", "HEAD"], include_in_schema=False)

    return app
