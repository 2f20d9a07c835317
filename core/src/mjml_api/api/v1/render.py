from __future__ import annotations

import logging
from typing import Final

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from mjml_api.api.models import CompileFailureResponse, DiagnosticModel, RenderResponse
from mjml_api.auth import require_authentication
from mjml_api.body import interpret_body
from mjml_api.compiler import CompileError, Compiler
from mjml_api.config import RenderConfig

RENDER_PATH: Final[str] = "/v1/render"
COMPILE_FAILED_MESSAGE: Final[str] = "Failed to compile mjml"

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["v1"])


@router.post(
    "/render",
    response_model=RenderResponse,
    responses={
        401: {"description": "Unauthenticated"},
        413: {"description": "Body too large"},
        500: {"model": CompileFailureResponse},
    },
    dependencies=[Depends(require_authentication)],
)
async def render(request: Request) -> RenderResponse | JSONResponse:
    compiler: Compiler = request.app.state.compiler
    render_config: RenderConfig = request.app.state.service_config.render

    document = interpret_body(await request.body())

    try:
        result = await run_in_threadpool(compiler.compile, document, render_config)
    except CompileError as e:
        logger.error(f"Failed to compile mjml: {e.message} ({len(e.errors)} diagnostics)")
        return JSONResponse(
            status_code=500,
            content={"message": COMPILE_FAILED_MESSAGE, **e.to_details()},
        )

    version = await run_in_threadpool(lambda: compiler.version)
    return RenderResponse(
        html=result.html,
        mjml=document,
        mjml_version=version,
        errors=[DiagnosticModel.from_diagnostic(d) for d in result.errors],
    )
