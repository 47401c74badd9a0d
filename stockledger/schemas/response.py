from pydantic import BaseModel, Field
from typing import Any, Optional
import uuid

def new_request_id() -> str:
    """Generates a unique request ID for tracing."""
    return uuid.uuid4().hex

class SuccessResponse(BaseModel):
    """Success envelope shared by every inventory endpoint."""
    success: Optional[bool] = Field(default=True)
    request_id: str = Field(default_factory=new_request_id)
    data: Optional[Any] = None
