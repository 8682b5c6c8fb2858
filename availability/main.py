from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from availability.api.routes import scheduling
from availability.core.config import settings
from availability.utils.audit_logger import audit_logger


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(scheduling.router, prefix=f"{settings.API_V1_PREFIX}/scheduling", tags=["Scheduling"])


@app.on_event("startup")
async def startup_event():
    """Record application startup"""
    audit_logger.log(
        action="application_startup",
        resource_type="application",
        status="success",
        details={"timezone": settings.DEFAULT_TIMEZONE}
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Record application shutdown"""
    audit_logger.log(
        action="application_shutdown",
        resource_type="application",
        status="success"
    )


@app.get("/", tags=["Health"])
async def health_check():
    """Basic health check endpoint"""
    return {"status": "ok", "version": "1.0.0"}
