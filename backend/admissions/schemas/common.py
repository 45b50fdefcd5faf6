"""Common schemas used across the application."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class BackendEnvelope(BaseModel):
    """Response wrapper used by the records backend.

    Usage:
        envelope = BackendEnvelope.model_validate(response.json())

    Shape:
        {
            "success": true,
            "data": {...},
            "error": "optional message"
        }
    """
    model_config = ConfigDict(extra="allow")

    success: bool | None = None
    data: Any = None
    error: str | None = None
    message: str | None = None

    @property
    def failure_message(self) -> str | None:
        return self.error or self.message
