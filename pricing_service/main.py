"""Pricing Service

Serves the service catalog and its priced line items, both flat (admin
editing) and as the nested pricing tree shown to customers.
Includes health checks and a read-through cache for the tree views.
"""

# =====================================================
# Standard Library Imports
# =====================================================
import logging
import os
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import List

# =====================================================
# Third-Party Imports
# =====================================================
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from sqlalchemy import delete as sa_delete
from sqlalchemy import or_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select
from starlette.middleware.base import BaseHTTPMiddleware

# =====================================================
# Local Imports
# =====================================================
from pricing_service.cache import create_cache
from pricing_service.db import close_db_connection, get_session, init_db
from pricing_service.hierarchy import (
    transform_service_to_hierarchical,
    would_create_cycle,
)
from pricing_service.models.models import Service, ServiceItem, utc_now
from pricing_service.models.schemas import (
    DependencyStatus,
    HealthCheckResponse,
    HierarchicalService,
    ServiceCreate,
    ServiceItemCreate,
    ServiceItemResponse,
    ServiceItemUpdate,
    ServiceResponse,
    ServiceUpdate,
)

# =====================================================
# Configuration & Middleware
# =====================================================
logger = logging.getLogger("pricing-service")
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request logging with request ID and response time."""

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_ts = time.time()
        logger.info("req_id=%s start method=%s path=%s", req_id, request.method, request.url.path)
        response = await call_next(request)
        duration_ms = int((time.time() - start_ts) * 1000)
        response.headers["X-Request-ID"] = req_id
        response.headers["X-Response-Time-ms"] = str(duration_ms)
        logger.info(
            "req_id=%s end status=%s path=%s duration_ms=%s",
            req_id,
            response.status_code,
            request.url.path,
            duration_ms,
        )
        return response


@asynccontextmanager
async def lifespan(_app: FastAPI):
    try:
        init_db()
        logger.info("Pricing DB initialized.")
    except SQLAlchemyError as e:
        logger.error("Pricing DB init failed: %s", e)
    yield
    close_db_connection()


# Get the ROOT_PATH environment variable defined in docker-compose
root_path = os.getenv("ROOT_PATH", "")

app = FastAPI(title="Pricing Service", lifespan=lifespan, root_path=root_path)
app.add_middleware(LoggingMiddleware)

cache = create_cache()

# =====================================================
# Helpers
# =====================================================


def _require_admin(request: Request):
    token_env = os.environ.get("ADMIN_TOKEN")
    if not token_env:
        return True  # If not configured, do not block
    token_hdr = request.headers.get("X-Admin-Token")
    if token_hdr != token_env:
        raise HTTPException(status_code=403, detail="Forbidden")
    return True


def _invalidate_pricing_cache() -> None:
    cache.invalidate_pattern("service:*")
    cache.invalidate_pattern("pricing:*")


def _get_service_or_404(session: Session, service_id: uuid.UUID) -> Service:
    service = session.get(Service, service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


def _get_item_or_404(session: Session, item_id: uuid.UUID) -> ServiceItem:
    item = session.get(ServiceItem, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Service item not found")
    return item


def _service_items(session: Session, service_id: uuid.UUID) -> List[ServiceItem]:
    return session.exec(
        select(ServiceItem)
        .where(ServiceItem.service_id == service_id)
        .order_by(ServiceItem.level, ServiceItem.sort_order, ServiceItem.name)
    ).all()


def _hierarchical_view(session: Session, service: Service, cache_key: str) -> HierarchicalService:
    view = transform_service_to_hierarchical(service, _service_items(session, service.id))
    cache.set(cache_key, view.model_dump(mode="json"))
    return view


# =====================================================
# Health Check
# =====================================================


@app.get("/health", response_model=HealthCheckResponse)
def health(session: Session = Depends(get_session)):
    """
    1. Checks the database with a trivial query.
    2. Reports whether Redis or the in-memory fallback is serving the cache.
    Only the database decides the overall status.
    """
    dependencies = {}
    service_name = "pricing-service"

    start = time.time()
    try:
        session.execute(text("SELECT 1"))
        dependencies["database"] = DependencyStatus(
            status="healthy", response_time_ms=int((time.time() - start) * 1000)
        )
    except SQLAlchemyError as e:
        logger.error("Health check failed for database: %s", e)
        dependencies["database"] = DependencyStatus(status="unhealthy", error=str(e))

    cache_state = cache.health()
    dependencies["cache"] = DependencyStatus(
        status="healthy" if cache_state["redis"] else "degraded",
        error=None if cache_state["redis"] else "using in-memory fallback",
    )

    overall_status = dependencies["database"].status
    response = HealthCheckResponse(
        service=service_name, status=overall_status, dependencies=dependencies
    )
    if overall_status == "unhealthy":
        raise HTTPException(status_code=503, detail=response.model_dump())
    return response


# =====================================================
# Services
# =====================================================


@app.get("/services", response_model=List[ServiceResponse])
def list_services(include_inactive: bool = False, session: Session = Depends(get_session)):
    stmt = select(Service).order_by(Service.created_at, Service.sort_order, Service.name)
    if not include_inactive:
        stmt = stmt.where(Service.is_active == True)  # noqa: E712
    return session.exec(stmt).all()


@app.get("/services/search", response_model=List[ServiceResponse])
def search_services(q: str = Query(..., min_length=1), session: Session = Depends(get_session)):
    """Case-insensitive search over active services by name or description."""
    pattern = f"%{q}%"
    stmt = (
        select(Service)
        .where(Service.is_active == True)  # noqa: E712
        .where(or_(col(Service.name).ilike(pattern), col(Service.description).ilike(pattern)))
        .order_by(Service.sort_order, Service.name)
    )
    return session.exec(stmt).all()


@app.get("/services/slug/{slug}", response_model=HierarchicalService)
def get_service_by_slug(slug: str, session: Session = Depends(get_session)):
    cache_key = f"service:slug:{slug}:hierarchy"
    cached = cache.get(cache_key)
    if cached is not None:
        return HierarchicalService.model_validate(cached)

    service = session.exec(select(Service).where(Service.slug == slug)).first()
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    return _hierarchical_view(session, service, cache_key)


@app.get("/services/{service_id}", response_model=HierarchicalService)
def get_service(service_id: uuid.UUID, session: Session = Depends(get_session)):
    """
    Returns the service with its items nested into a tree.
    1) Try the cache
    2) Fallback to DB and rebuild the tree
    """
    cache_key = f"service:{service_id}:hierarchy"
    cached = cache.get(cache_key)
    if cached is not None:
        return HierarchicalService.model_validate(cached)

    service = _get_service_or_404(session, service_id)
    return _hierarchical_view(session, service, cache_key)


@app.post("/services", response_model=ServiceResponse, status_code=201)
def create_service(
    payload: ServiceCreate, request: Request, session: Session = Depends(get_session)
):
    _require_admin(request)

    existing = session.exec(select(Service).where(Service.slug == payload.slug)).first()
    if existing:
        raise HTTPException(status_code=409, detail="Service with this slug already exists")

    service = Service(**payload.model_dump())
    session.add(service)
    session.commit()
    session.refresh(service)

    _invalidate_pricing_cache()
    return service


@app.patch("/services/{service_id}", response_model=ServiceResponse)
def update_service(
    service_id: uuid.UUID,
    payload: ServiceUpdate,
    request: Request,
    session: Session = Depends(get_session),
):
    _require_admin(request)
    service = _get_service_or_404(session, service_id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(service, field, value)
    service.updated_at = utc_now()

    session.add(service)
    session.commit()
    session.refresh(service)

    _invalidate_pricing_cache()
    return service


@app.delete("/services/{service_id}", status_code=204)
def delete_service(service_id: uuid.UUID, request: Request, session: Session = Depends(get_session)):
    """Deletes a service together with all of its items."""
    _require_admin(request)
    service = _get_service_or_404(session, service_id)

    session.execute(sa_delete(ServiceItem).where(ServiceItem.service_id == service.id))
    session.delete(service)
    session.commit()

    _invalidate_pricing_cache()
    return None


# =====================================================
# Pricing overview
# =====================================================


@app.get("/pricing", response_model=List[HierarchicalService])
def get_pricing(session: Session = Depends(get_session)):
    """All active services with their pricing trees, in catalog order."""
    cached = cache.get("pricing:all")
    if cached is not None:
        return [HierarchicalService.model_validate(entry) for entry in cached]

    services = session.exec(
        select(Service)
        .where(Service.is_active == True)  # noqa: E712
        .order_by(Service.sort_order, Service.name)
    ).all()

    items_by_service = defaultdict(list)
    if services:
        rows = session.exec(
            select(ServiceItem).where(col(ServiceItem.service_id).in_([s.id for s in services]))
        ).all()
        for item in rows:
            items_by_service[item.service_id].append(item)

    views = [
        transform_service_to_hierarchical(service, items_by_service[service.id])
        for service in services
    ]
    cache.set("pricing:all", [view.model_dump(mode="json") for view in views])
    return views


# =====================================================
# Service Items
# =====================================================


@app.get("/services/{service_id}/items", response_model=List[ServiceItemResponse])
def list_service_items(service_id: uuid.UUID, session: Session = Depends(get_session)):
    _get_service_or_404(session, service_id)
    return _service_items(session, service_id)


@app.post(
    "/services/{service_id}/items", response_model=ServiceItemResponse, status_code=201
)
def create_service_item(
    service_id: uuid.UUID,
    payload: ServiceItemCreate,
    request: Request,
    session: Session = Depends(get_session),
):
    _require_admin(request)
    _get_service_or_404(session, service_id)

    level = payload.level
    if payload.parent_id is not None:
        parent = session.get(ServiceItem, payload.parent_id)
        if not parent or parent.service_id != service_id:
            raise HTTPException(
                status_code=422, detail="parent_id must reference an item of the same service"
            )
        if level is None:
            level = parent.level + 1

    item = ServiceItem(
        service_id=service_id,
        **payload.model_dump(exclude={"level"}),
        level=level or 1,
    )
    session.add(item)
    session.commit()
    session.refresh(item)

    _invalidate_pricing_cache()
    return item


@app.patch("/items/{item_id}", response_model=ServiceItemResponse)
def update_service_item(
    item_id: uuid.UUID,
    payload: ServiceItemUpdate,
    request: Request,
    session: Session = Depends(get_session),
):
    """
    Updates an item. Moving it under another parent is allowed within the
    same service, as long as the parent chain stays a tree.
    """
    _require_admin(request)
    item = _get_item_or_404(session, item_id)
    updates = payload.model_dump(exclude_unset=True)

    if "parent_id" in updates and updates["parent_id"] is not None:
        new_parent_id = updates["parent_id"]
        parent = session.get(ServiceItem, new_parent_id)
        if not parent or parent.service_id != item.service_id:
            raise HTTPException(
                status_code=422, detail="parent_id must reference an item of the same service"
            )
        siblings = _service_items(session, item.service_id)
        if would_create_cycle(siblings, item.id, new_parent_id):
            raise HTTPException(
                status_code=409, detail="Moving this item there would create a cycle"
            )

    for field, value in updates.items():
        setattr(item, field, value)
    item.updated_at = utc_now()

    session.add(item)
    session.commit()
    session.refresh(item)

    _invalidate_pricing_cache()
    return item


@app.delete("/items/{item_id}", status_code=204)
def delete_service_item(item_id: uuid.UUID, request: Request, session: Session = Depends(get_session)):
    _require_admin(request)
    item = _get_item_or_404(session, item_id)

    has_children = session.exec(
        select(ServiceItem.id).where(ServiceItem.parent_id == item.id).limit(1)
    ).first()
    if has_children:
        raise HTTPException(status_code=409, detail="Delete or move the item's children first")

    session.delete(item)
    session.commit()

    _invalidate_pricing_cache()
    return None
