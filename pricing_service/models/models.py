"""Data models for the Pricing Service.

Defines SQLModel tables for `Service` and its flat list of `ServiceItem`
rows. The nested view is derived on read by `pricing_service.hierarchy`.
"""

# pricing_service/models/models.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlmodel import Field, SQLModel

from .schemas import ServiceCategory


def utc_now() -> datetime:
    """Timestamps are stored timezone-aware, in UTC."""
    return datetime.now(timezone.utc)


# --- Table 1: Services ---
class Service(SQLModel, table=True):
    """A sellable care package (e.g. a home-care plan)."""

    __tablename__ = "services"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    name: str = Field(nullable=False)
    slug: str = Field(unique=True, index=True, nullable=False)
    display_name: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    short_description: Optional[str] = Field(default=None)
    category: ServiceCategory = Field(default=ServiceCategory.HOME_CARE)

    # Only one tier is normally populated
    base_price_daily: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    base_price_monthly: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    base_price_hourly: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)

    is_active: bool = Field(default=True)
    is_popular: bool = Field(default=False)
    sort_order: int = Field(default=0)
    color_theme: str = Field(default="teal")
    icon: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)


# --- Table 2: Service Items ---
class ServiceItem(SQLModel, table=True):
    """One priced line item of a service; `parent_id` NULL means top level."""

    __tablename__ = "service_items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    service_id: uuid.UUID = Field(foreign_key="services.id", index=True, nullable=False)

    # Self reference; the graph must stay a tree
    parent_id: Optional[uuid.UUID] = Field(default=None, foreign_key="service_items.id", index=True)

    name: str = Field(nullable=False)
    description: Optional[str] = Field(default=None)

    # Depth hint only; the builder derives the real depth
    level: int = Field(default=1)

    is_required: bool = Field(default=False)
    is_popular: bool = Field(default=False)
    sort_order: int = Field(default=0)

    price_daily: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    price_monthly: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    price_hourly: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    # Legacy single-price column
    base_price: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)
