import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from authgate import __version__
from authgate.auth.router import router as auth_router, start_auth_service
from authgate.auth.users import AuthResponse
from authgate.base_service import BaseService, engine
from authgate.config import get_settings
from authgate.secured.router import router as secured_router

# Create shared base service instance
base_service = BaseService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Fail fast when the signing secret is not configured
    get_settings()
    base_service.log_event("service.startup", {"service": "main"})
    await start_auth_service()

    yield

    base_service.log_event("service.shutdown", {"service": "main"})
    await engine.dispose()


# Create main FastAPI app with lifespan
app = FastAPI(
    title="authgate API",
    description="Bearer-token authentication and role-based authorization",
    version=__version__,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _describe(error: dict) -> str:
    field = ".".join(str(part) for part in error["loc"] if part != "body") or "body"
    message = error["msg"]
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{field}: {message}"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are answered with a 400 AuthResponse."""
    messages = [_describe(error) for error in exc.errors()]
    base_service.log_event("request.invalid", {"path": request.url.path, "errors": messages})
    return base_service.schema_response(
        AuthResponse(is_success=False, message=", ".join(messages)),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


# Include routers with prefixes
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(secured_router, prefix="/secured", tags=["secured"])


@app.get("/", tags=["root"])
async def root():
    """Root endpoint returning API information."""
    return {
        "name": "authgate API",
        "version": __version__,
        "services": ["auth", "secured"],
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Overall system health check."""
    return {
        "status": "ok",
        "services": {
            "auth": "online",
            "secured": "online"
        }
    }


# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("authgate.main:app", host="0.0.0.0", port=8000, reload=True)
