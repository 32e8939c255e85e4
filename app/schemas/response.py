from pydantic import BaseModel, Field
from typing import Generic, TypeVar, Optional, Any, Dict

DataType = TypeVar("DataType")

class APIResponse(BaseModel, Generic[DataType]):
    """Generic API response model for consistent output."""
    success: bool = Field(True, description="Whether the operation succeeded.")
    message: Optional[str] = Field(None, description="A human-readable message about the response.")
    data: Optional[DataType] = Field(None, description="The actual data returned by the API, if any.")

class ErrorDetail(BaseModel):
    """Standardized error detail model."""
    code: str = Field(..., description="Error code for client handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    success: bool = Field(False, description="Always false for errors")
    error: ErrorDetail = Field(..., description="Error details")
    timestamp: str = Field(..., description="ISO 8601 timestamp of error")
    path: str = Field(..., description="Request path that caused the error")
    request_id: Optional[str] = Field(None, description="Unique request identifier for debugging")

class ServiceResult(BaseModel):
    """Outcome of a notification service or automation call.

    Failures are values, not exceptions: callers running on fire-and-forget
    paths inspect ``success`` instead of wrapping every call in try/except.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: Optional[str] = None) -> "ServiceResult":
        return cls(success=False, error=error, error_code=code)

    @classmethod
    def from_error(cls, exc: Exception) -> "ServiceResult":
        return cls.fail(str(exc), getattr(exc, "code", None))
