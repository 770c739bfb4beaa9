"""
Pydantic schemas for the Fairfence FastAPI backend.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class PricingData(BaseModel):
    tables: list[dict] = Field(default_factory=list)
    data: dict = Field(default_factory=dict)
    fallback: bool
    pricing: dict[str, dict[str, Any]]
    source: str
    timestamp: str
    error: Optional[str] = None


class PricingResponse(BaseModel):
    success: Literal[True] = True
    data: PricingData


class PricingRowsResponse(BaseModel):
    success: Literal[True] = True
    data: list[dict]


class ConfigStatusPayload(BaseModel):
    source: Optional[str] = None
    initialized: bool
    hasElevatedCredentials: bool


class ConfigStatusResponse(BaseModel):
    success: bool
    config: ConfigStatusPayload


class ServiceStatus(BaseModel):
    server: str
    timestamp: str
    database: str
    config: str


class ServiceStatusResponse(BaseModel):
    success: bool
    status: ServiceStatus


class HealthResponse(BaseModel):
    status: Literal["healthy"]
    timestamp: str
    uptime: float
