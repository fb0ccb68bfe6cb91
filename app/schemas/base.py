"""
Keyhost Flights - Base Schemas
Common Pydantic schemas used across the API
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class BaseSchema(BaseModel):
    """Base schema with common configuration"""

    class Config:
        from_attributes = True
        use_enum_values = True


# === Common Response Schemas ===

class SuccessResponse(BaseSchema):
    """Generic success response"""
    success: bool = True
    message: str


class ErrorResponse(BaseSchema):
    """Generic error response"""
    success: bool = False
    error: str
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


# === Health Check Schemas ===

class HealthCheckResponse(BaseSchema):
    """Health check response"""
    status: str = "healthy"
    service: str
    version: str
    timestamp: datetime
    environment: str
    services: Dict[str, str] = Field(default_factory=dict)
