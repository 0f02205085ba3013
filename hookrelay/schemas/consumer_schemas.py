"""Pydantic schemas for polling consumers."""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hookrelay.schemas.rest_route_schemas import RouteAction

ConsumerSchedule = Literal["hourly", "twicedaily", "daily"]

SCHEDULE_INTERVALS: Dict[str, int] = {
    "hourly": 3600,
    "twicedaily": 43200,
    "daily": 86400,
}


class ConsumerBase(BaseModel):
    """Base schema for consumers."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    source_url: str = Field(..., min_length=1, max_length=2048)
    http_method: Literal["GET", "POST"] = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    schedule: ConsumerSchedule = "hourly"
    actions: List[RouteAction] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("http_method", mode="before")
    @classmethod
    def upper_method(cls, value):
        return value.upper() if isinstance(value, str) else value

    @field_validator("source_url")
    @classmethod
    def require_http_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("source_url must be an http(s) URL")
        return value


class ConsumerCreate(ConsumerBase):
    """Schema for creating a consumer."""
    created_by: Optional[int] = None


class ConsumerUpdate(BaseModel):
    """Schema for updating a consumer."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    source_url: Optional[str] = Field(None, min_length=1, max_length=2048)
    http_method: Optional[Literal["GET", "POST"]] = None
    headers: Optional[Dict[str, str]] = None
    schedule: Optional[ConsumerSchedule] = None
    actions: Optional[List[RouteAction]] = None
    is_active: Optional[bool] = None


class ConsumerResponse(ConsumerBase):
    """Schema for consumer response."""
    id: int
    last_run: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
