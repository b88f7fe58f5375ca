"""
Pydantic models for the merge service API.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class LinkGuestProfileRequest(BaseModel):
    """Request body for linking a guest session to a user."""

    model_config = ConfigDict(populate_by_name=True)

    # Optional so missing fields get the service's 400, not a 422
    user_id: Optional[str] = Field(None, alias="userId", description="Authenticated user id.")
    session_id: Optional[str] = Field(None, alias="sessionId", description="Guest session id.")


class LinkGuestProfileResponse(BaseModel):
    """Successful merge."""

    success: bool = True
    message: str
    result: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Error body returned by the merge endpoint."""

    success: bool = False
    error: str


class LinkedProfileResponse(BaseModel):
    """Whether a user holds merged (non-temporary) profile data."""

    user_id: str
    exists: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: Optional[str] = None
