import os
import logging
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from authgate.config import DEFAULT_DATABASE_URL

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("authgate")

# SQLAlchemy async setup
DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
engine = create_async_engine(DATABASE_URL, echo=False, future=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
Base = declarative_base()


async def get_db_session():
    """Dependency for getting a database session."""
    async with AsyncSessionLocal() as session:
        yield session


class SchemaResponse(JSONResponse):
    """
    JSON response rendering a pydantic model by its field aliases.
    """
    def __init__(self, model: BaseModel, **kwargs):
        content = model.model_dump(mode="json", by_alias=True)
        super().__init__(content=content, **kwargs)


class BaseService:
    """
    Shared helpers for the service routers. Provides:
    - Structured event logging
    - Error logging with context
    - Alias-aware JSON responses for pydantic schemas
    """
    def __init__(self, name: str = "authgate"):
        self.name = name
        self.logger = logger

    def schema_response(
        self,
        model: BaseModel,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> SchemaResponse:
        """
        Return a response whose body is the model serialized with its aliases.
        """
        return SchemaResponse(model, status_code=status_code, headers=headers)

    def log_event(self, event: str, details: Dict[str, Any] = None):
        self.logger.info(f"EVENT: {event} | Details: {details}")

    def log_error(self, error: Exception, context: str = ""):
        self.logger.error(f"ERROR: {str(error)} | Context: {context}")
