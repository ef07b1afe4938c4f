from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import logging

from .core.config import get_settings
from .core.deps import AppContext
from .core.errors import AgentError
from .api.routes import router as api_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the API around an app context; one is created from settings when not given."""
    settings = context.settings if context is not None else get_settings()
    context = context or AppContext.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if context.agent is not None:
            try:
                await context.agent.connect()
            except AgentError as e:
                # Model threads still work; agent threads report not-connected until a reconnect
                logger.warning(f"Agent unavailable at startup: {e}")
        yield
        await context.aclose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="API for Envoy threads and streaming chat",
        version="1.0.0",
        docs_url=f"{settings.API_V1_STR}/docs",
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        redoc_url=f"{settings.API_V1_STR}/redoc",
        lifespan=lifespan,
    )
    app.state.context = context

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Thread-Id"],
    )

    # Root endpoint for testing
    @app.get("/")
    async def root():
        return {"message": "Welcome to Envoy API"}

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # Include API routes
    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app

app = create_app()

if __name__ == "__main__":
    uvicorn.run("envoy_backend.main:app", host="0.0.0.0", port=8000, reload=True)
