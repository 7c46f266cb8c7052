import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi

from edufin import models  # noqa: F401  (registers every table on Base.metadata)
from edufin.api import admin, applications, catalog, installments
from edufin.config import settings
from edufin.database import engine, Base
from edufin.exceptions import register_exception_handlers
from edufin.middleware.logging import setup_logging, add_logging_middleware

# Initialize FastAPI app
app = FastAPI(
    title="EduFin EMI API",
    description="API for financing student fees through EMI plans: fee applications, review, installment schedules and payments",
    version="1.0.0",
    docs_url=None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup logging
setup_logging()
add_logging_middleware(app)
logger = logging.getLogger(__name__)

register_exception_handlers(app)


# Create database tables
@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or verified")


# Include routers
app.include_router(catalog.router, prefix="/api", tags=["Catalog"])
app.include_router(applications.router, prefix="/api", tags=["Applications"])
app.include_router(installments.router, prefix="/api", tags=["Installments"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])


# Custom OpenAPI schema for documentation
@app.get("/api/docs", include_in_schema=False)
async def custom_swagger_ui_html():
    return get_swagger_ui_html(
        openapi_url="/api/openapi.json",
        title="EduFin EMI API Documentation",
        swagger_ui_parameters={"defaultModelsExpandDepth": -1},
    )


@app.get("/api/openapi.json", include_in_schema=False)
async def get_openapi_endpoint():
    return get_openapi(
        title="EduFin EMI API",
        version="1.0.0",
        description="API for financing student fees through EMI plans",
        routes=app.routes,
    )


@app.get("/", tags=["Root"])
async def root():
    return {"message": "Welcome to EduFin EMI API. Visit /api/docs for documentation."}


# Run the server
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("edufin.main:app", host="0.0.0.0", port=5000, reload=True)
