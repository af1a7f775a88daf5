"""
Module: dispatch.py
Description: Normalized outcome of a single webhook dispatch.

Dependencies: pydantic, typing
Author: Push Queue Team
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DispatchOutcome(BaseModel):
    """
    Result of one dispatch attempt.

    Attributes:
        success: Whether the downstream endpoint accepted the webhook
        error: Error text for failed dispatches
        is_rate_limited: Failure was caused by downstream throttling
    """

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether the dispatch succeeded")
    error: Optional[str] = Field(default=None, description="Failure description")
    is_rate_limited: bool = Field(default=False, description="Rate-limit-class failure")

    @classmethod
    def succeeded(cls) -> "DispatchOutcome":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str, is_rate_limited: bool = False) -> "DispatchOutcome":
        return cls(success=False, error=error, is_rate_limited=is_rate_limited)
