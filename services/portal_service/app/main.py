"""FastAPI application for the Portal Service."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.portal_service.routers import crm_router, leads_router, me_router


def create_app() -> FastAPI:
    """Create and configure the Portal Service FastAPI app."""
    app = FastAPI(
        title="VitalityX Portal Service",
        version="0.1.0",
        description="Client portal profile aggregation and staff CRM.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_observability_middleware(app, service="portal")
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "portal"}

    app.include_router(me_router, prefix="/portal")
    app.include_router(crm_router, prefix="/crm")
    app.include_router(leads_router, prefix="/crm")

    return app


app = create_app()
