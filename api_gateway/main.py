"""
FastAPI application for the render service.
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.config import settings
from shared.errors import PipelineError
from shared.logging import get_logger

from api_gateway.routes import render

logger = get_logger(__name__)

app = FastAPI(
    title="Slideshow Render API",
    description="Composes narrated image slideshows into MP4 video",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(render.router, prefix="/api", tags=["render"])


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Errors raised outside the route bodies (e.g. while building dependencies)."""
    logger.error(
        f"Request failed: {exc}",
        extra={"path": request.url.path, "error_type": type(exc).__name__}
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Failed to render video: {exc}"}
    )


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok", "environment": settings.environment}
