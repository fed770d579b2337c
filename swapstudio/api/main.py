import os
import logging

from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from swapstudio.api.routers import api_router
from swapstudio.api.lifespan import lifespan
from swapstudio.api.dependencies import get_client_config
from swapstudio.api.schemas import HealthResponse
from swapstudio.core.client_config import ClientConfig
from swapstudio.core.constants import CORS_ALLOWED_ORIGINS
from swapstudio.core.errors import SwapStudioError


# Configure logging
log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)
logger.info(f"🔧 API Logger initialized with level: {log_level}")


# Create FastAPI application
app = FastAPI(
    title="SwapStudio API",
    description="""
    AI garment swap and fashion image generation service.

    This API provides endpoints for:
    - Garment swap: analyze the person and product images, build a structured
      editing directive and generate the edited image (with fallback model)
    - Scene and product shot generation
    - Pose regeneration
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(SwapStudioError)
async def swapstudio_exception_handler(request: Request, exc: SwapStudioError):
    """Typed errors raised at the HTTP boundary (bad uploads, unreachable asset URLs)"""
    logger.warning(f"{exc.kind} on {request.url.path}: {exc.message}")
    content = {"error": exc.message, "kind": exc.kind}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors"""
    logger.warning(f"Invalid request body on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": str(exc.errors()), "kind": "InvalidRequest"}
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error": str(exc) if os.getenv("ENV") == "development" else "An error occurred"
        }
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse)
async def health_check(client_config: Optional[ClientConfig] = Depends(get_client_config)):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "swapstudio-api",
        "version": "1.0.0",
        "gateway_ready": bool(client_config and client_config.gateway is not None),
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "SwapStudio API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "api": "/api"
    }


# Include API routes
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    # Run with uvicorn for development
    uvicorn.run(
        "swapstudio.api.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "3001")),
        reload=True,
        log_level="info"
    )
