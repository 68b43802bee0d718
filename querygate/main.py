import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from querygate.api.exception_handlers import register_exception_handlers
from querygate.api.routes import datasource_routes, query_routes
from querygate.core.config import get_settings


def create_application() -> FastAPI:
    """Create FastAPI application."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    application = FastAPI(
        title=settings.PROJECT_NAME,
        description=settings.PROJECT_DESCRIPTION,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Set up CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)

    # Include routers
    application.include_router(datasource_routes.router, prefix=settings.API_V1_STR)
    application.include_router(query_routes.router, prefix=settings.API_V1_STR)

    @application.get("/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "query-gateway",
            "version": settings.VERSION
        }

    return application


app = create_application()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("querygate.main:app", host="0.0.0.0", port=8000, reload=True)
