"""Structured outcomes returned by the delivery pipeline."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HttpResponse(BaseModel):
    """Normalized transport outcome; ``code`` 0 means no response was obtained."""
    code: int = 0
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: str = ""
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.code < 300


class DeliveryResult(BaseModel):
    """Outcome of one dispatch or retry."""
    log_id: Optional[int] = None
    status: str
    response_code: Optional[int] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    attempt_number: int = 1
    retry_scheduled: bool = False

    @property
    def success(self) -> bool:
        return self.status == "success"


class WebhookTestResult(BaseModel):
    """Schema for webhook test result."""
    success: bool
    response_code: Optional[int] = None
    response_body: Optional[str] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    log_id: Optional[int] = None
