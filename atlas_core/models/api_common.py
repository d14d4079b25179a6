# atlas_core/models/api_common.py

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List


class OkResponse(BaseModel):
    """Generic success envelope. Extra keys are carried through."""
    model_config = ConfigDict(extra="allow")

    ok: bool = True


class ErrorResponse(BaseModel):
    """Failure envelope rendered by the exception handlers."""
    model_config = ConfigDict(extra="allow")

    ok: bool = False
    error: str = Field(..., description="Error code or human readable message.")


class ErrorDetail(BaseModel):
    """One field-level validation problem."""
    field: Optional[str | int | List[str | int]] = None
    message: str


class ValidationErrorResponse(ErrorResponse):
    error: str = "validation_error"
    errors: List[ErrorDetail]
