"""
Shared Pydantic Models - Common response schemas
"""

from typing import Any, List, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response"""
    success: bool = False
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None
    context: Optional[dict] = None
    violations: Optional[List[dict]] = None


class SuccessResponse(BaseModel):
    """Simple success response"""
    success: bool = True
    message: str = "Operation completed successfully"
    id: Optional[str] = None
    data: Optional[Any] = None
