import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from sqlalchemy.exc import IntegrityError

from edu_admin.api import auth, tenants, students, catalogue, materials, licenses, papers
from edu_admin.config import settings
from edu_admin.database import engine, AsyncSessionLocal
from edu_admin.models import Base
from edu_admin.middleware.logging import setup_logging, add_logging_middleware
from edu_admin.models.users import ROLE_SYSTEM_ADMIN, ROLE_ENTITY_ADMIN, ROLE_TEACHER, ROLE_STUDENT
from edu_admin.services.auth import get_or_create_role

# Initialize FastAPI app
app = FastAPI(
    title="Education Admin API",
    description="Administration API for branches, students, the curriculum catalogue, learning materials, licenses and past paper imports",
    version="1.0.0",
    docs_url=None,
    openapi_url=None,
)

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

@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {str(exc.orig)}")
    return JSONResponse(
        status_code=409,
        content={"detail": "The record conflicts with existing data or references a missing record."},
    )

# Custom exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )

# Create database tables and seed roles
@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or verified")

    async with AsyncSessionLocal() as db:
        for role_name in (ROLE_SYSTEM_ADMIN, ROLE_ENTITY_ADMIN, ROLE_TEACHER, ROLE_STUDENT):
            await get_or_create_role(db, role_name)
        await db.commit()

# Include routers
app.include_router(auth.router, prefix="/api", tags=["Authentication"])
app.include_router(tenants.router, prefix="/api", tags=["Organisation"])
app.include_router(students.router, prefix="/api", tags=["Students"])
app.include_router(catalogue.router, prefix="/api", tags=["Catalogue"])
app.include_router(materials.router, prefix="/api", tags=["Materials"])
app.include_router(licenses.router, prefix="/api", tags=["Licenses"])
app.include_router(papers.router, prefix="/api", tags=["Papers Setup"])

# Custom OpenAPI schema for documentation
@app.get("/api/docs", include_in_schema=False)
async def custom_swagger_ui_html():
    return get_swagger_ui_html(
        openapi_url="/api/openapi.json",
        title="Education Admin API Documentation",
        swagger_ui_parameters={"defaultModelsExpandDepth": -1},
    )

@app.get("/api/openapi.json", include_in_schema=False)
async def get_openapi_endpoint():
    return get_openapi(
        title="Education Admin API",
        version="1.0.0",
        description="Education Admin API",
        routes=app.routes,
    )

@app.get("/", tags=["Root"])
async def root():
    return {"message": "Welcome to the Education Admin API. Visit /api/docs for documentation."}

# Run the server
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("edu_admin.main:app", host="0.0.0.0", port=5000, reload=True)
