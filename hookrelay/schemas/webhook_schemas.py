"""Pydantic schemas for webhook definitions and delivery logs."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
PayloadFormat = Literal["json", "form"]
DeliveryStatus = Literal["pending", "success", "failed"]


class WebhookBase(BaseModel):
    """Base schema for webhook definitions."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    trigger_key: str = Field(..., min_length=1, max_length=100, description="Trigger key, e.g. post_published")
    trigger_config: Dict[str, Any] = Field(default_factory=dict, description="Filter parameters for the trigger")
    endpoint_url: str = Field(..., min_length=1, max_length=2048)
    http_method: HttpMethod = "POST"
    custom_headers: Dict[str, str] = Field(default_factory=dict)
    payload_format: PayloadFormat = "json"
    payload_template: Dict[str, Any] = Field(default_factory=dict, description="Empty for the default payload")
    secret_key: Optional[str] = Field(None, max_length=255)
    is_active: bool = True
    retry_count: int = Field(default=3, ge=0, le=10, description="Retries after the first attempt; 0 disables")
    retry_delay_seconds: int = Field(default=60, ge=10, le=3600)

    @field_validator("http_method", mode="before")
    @classmethod
    def upper_method(cls, value):
        return value.upper() if isinstance(value, str) else value

    @field_validator("endpoint_url")
    @classmethod
    def require_http_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("endpoint_url must be an http(s) URL")
        return value


class WebhookCreate(WebhookBase):
    """Schema for creating a webhook."""
    created_by: Optional[int] = None


class WebhookUpdate(BaseModel):
    """Schema for updating a webhook."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    trigger_key: Optional[str] = Field(None, min_length=1, max_length=100)
    trigger_config: Optional[Dict[str, Any]] = None
    endpoint_url: Optional[str] = Field(None, min_length=1, max_length=2048)
    http_method: Optional[HttpMethod] = None
    custom_headers: Optional[Dict[str, str]] = None
    payload_format: Optional[PayloadFormat] = None
    payload_template: Optional[Dict[str, Any]] = None
    secret_key: Optional[str] = None
    is_active: Optional[bool] = None
    retry_count: Optional[int] = Field(None, ge=0, le=10)
    retry_delay_seconds: Optional[int] = Field(None, ge=10, le=3600)


class WebhookResponse(WebhookBase):
    """Schema for webhook response."""
    id: int
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeliveryLogResponse(BaseModel):
    """Schema for a delivery log row."""
    id: int
    webhook_id: int
    trigger_key: str
    trigger_event_data: Optional[Dict[str, Any]] = None
    endpoint_url: str
    request_headers: Optional[Dict[str, str]] = None
    request_payload: Optional[str] = None
    response_code: Optional[int] = None
    response_headers: Optional[Dict[str, Any]] = None
    response_body: Optional[str] = None
    duration_ms: Optional[int] = None
    status: DeliveryStatus
    error_message: Optional[str] = None
    attempt_number: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeliveryLogStats(BaseModel):
    """Aggregate delivery statistics."""
    total: int
    today: int
    success_today: int
    failed_today: int
    pending_today: int
    success_rate: float = Field(..., description="Percent of today's finished deliveries that succeeded")


class WebhookDeliveryStats(BaseModel):
    """Per-webhook delivery statistics."""
    total: int
    success: int
    failed: int
    last_run: Optional[datetime] = None
    avg_duration: Optional[float] = None
