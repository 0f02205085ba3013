"""Pydantic schemas for inbound REST routes and action chain results."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ActionType = Literal["transform", "event", "create_record", "update_record", "http_request"]


class RouteAction(BaseModel):
    """One step of a route's action chain."""
    type: ActionType
    config: Dict[str, Any] = Field(default_factory=dict)


class RestRouteBase(BaseModel):
    """Base schema for REST routes."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    route_path: str = Field(..., min_length=1, max_length=255)
    methods: List[str] = Field(default_factory=lambda: ["POST"])
    actions: List[RouteAction] = Field(default_factory=list)
    is_active: bool = True
    is_async: bool = False
    secret_key: Optional[str] = Field(None, max_length=255)

    @field_validator("route_path")
    @classmethod
    def strip_slashes(cls, value: str) -> str:
        value = value.strip().strip("/")
        if not value:
            raise ValueError("route_path must not be empty")
        return value

    @field_validator("methods")
    @classmethod
    def upper_methods(cls, value: List[str]) -> List[str]:
        methods = [method.strip().upper() for method in value if method.strip()]
        if not methods:
            raise ValueError("at least one method is required")
        return methods


class RestRouteCreate(RestRouteBase):
    """Schema for creating a REST route."""
    created_by: Optional[int] = None


class RestRouteUpdate(BaseModel):
    """Schema for updating a REST route."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    route_path: Optional[str] = Field(None, min_length=1, max_length=255)
    methods: Optional[List[str]] = None
    actions: Optional[List[RouteAction]] = None
    is_active: Optional[bool] = None
    is_async: Optional[bool] = None
    secret_key: Optional[str] = None

    @field_validator("route_path")
    @classmethod
    def strip_slashes(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().strip("/") if value is not None else value


class RestRouteResponse(RestRouteBase):
    """Schema for REST route response."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActionResult(BaseModel):
    """Outcome of a single action in a chain."""
    type: str
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Optional[Any] = None
    output: Optional[str] = None


class ExecutionResult(BaseModel):
    """Outcome of one run of a route's action chain."""
    success: bool
    actions: List[ActionResult] = Field(default_factory=list)
    data: Any = None


class RouteEnvelope(BaseModel):
    """JSON envelope returned by inbound routes."""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
