# pricing_service/models/schemas.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# All API payloads use camelCase keys; snake_case is accepted on input too.
API_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =====================================================
# Enums
# =====================================================
class ServiceCategory(str, Enum):
    HOME_CARE = "home_care"
    NANNY = "nanny"
    EMERGENCY = "emergency"
    CUSTOM = "custom"
    EVENT = "event"


# =====================================================
# Services
# =====================================================
class ServiceBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    display_name: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    category: ServiceCategory = ServiceCategory.HOME_CARE

    # Tier prices (whichever is populated is shown)
    base_price_daily: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    base_price_monthly: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    base_price_hourly: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)

    is_active: bool = True
    is_popular: bool = False
    sort_order: int = 0
    color_theme: str = "teal"
    icon: Optional[str] = None

    model_config = API_CONFIG


class ServiceCreate(ServiceBase):
    model_config = ConfigDict(**API_CONFIG, extra="forbid")


class ServiceUpdate(BaseModel):
    """Partial update: only provided fields are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    display_name: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    category: Optional[ServiceCategory] = None
    base_price_daily: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    base_price_monthly: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    base_price_hourly: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    is_active: Optional[bool] = None
    is_popular: Optional[bool] = None
    sort_order: Optional[int] = None
    color_theme: Optional[str] = None
    icon: Optional[str] = None

    model_config = ConfigDict(**API_CONFIG, extra="forbid")

    @field_validator("name", "category", "is_active", "is_popular", "sort_order", "color_theme")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class ServiceResponse(ServiceBase):
    id: uuid.UUID
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(**API_CONFIG, from_attributes=True)


# =====================================================
# Service Items
# =====================================================
class ServiceItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Item name is required")
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    level: Optional[int] = Field(None, ge=1)
    is_required: bool = False
    is_popular: bool = False
    sort_order: int = 0
    price_daily: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    price_monthly: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    price_hourly: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    base_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)

    model_config = ConfigDict(**API_CONFIG, extra="forbid")


class ServiceItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    level: Optional[int] = Field(None, ge=1)
    is_required: Optional[bool] = None
    is_popular: Optional[bool] = None
    sort_order: Optional[int] = None
    price_daily: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    price_monthly: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    price_hourly: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    base_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)

    model_config = ConfigDict(**API_CONFIG, extra="forbid")

    # parent_id, description and prices are nullable; these columns are not
    @field_validator("name", "level", "is_required", "is_popular", "sort_order")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class ServiceItemResponse(BaseModel):
    id: uuid.UUID
    service_id: uuid.UUID
    parent_id: Optional[uuid.UUID] = None
    name: str
    description: Optional[str] = None
    level: int
    is_required: bool
    is_popular: bool
    sort_order: int
    price_daily: Optional[Decimal] = None
    price_monthly: Optional[Decimal] = None
    price_hourly: Optional[Decimal] = None
    base_price: Optional[Decimal] = None

    model_config = ConfigDict(**API_CONFIG, from_attributes=True)


# =====================================================
# Hierarchical views (derived, never persisted)
# =====================================================
class ServiceItemNode(BaseModel):
    id: uuid.UUID
    name: str
    description: str = ""
    level: int
    depth: int = 0
    sort_order: int = 0
    is_optional: bool
    base_price: float = 0.0
    children: List[ServiceItemNode] = Field(default_factory=list)

    model_config = API_CONFIG


class HierarchicalService(BaseModel):
    id: uuid.UUID
    name: str
    description: str = ""
    base_price: float = 0.0
    items: List[ServiceItemNode] = Field(default_factory=list)

    model_config = API_CONFIG


# =====================================================
# Health Check Models
# =====================================================
class DependencyStatus(BaseModel):
    status: str
    response_time_ms: Optional[float] = None
    error: Optional[str] = None


class HealthCheckResponse(BaseModel):
    service: str
    status: str
    dependencies: Dict[str, DependencyStatus] = Field(default_factory=dict)
