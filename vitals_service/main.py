"""Vitals Service

Records caregiver-submitted vital signs, raises alerts for values outside
the patient's normal range, and serves history, trends and alert
acknowledgement. Includes health checks and a Redis "latest reading" cache.
"""

# =====================================================
# Standard Library Imports
# =====================================================
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

# =====================================================
# Third-Party Imports
# =====================================================
import httpx
import redis
from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import UUID4
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select
from starlette.middleware.base import BaseHTTPMiddleware

# =====================================================
# Local Imports
# =====================================================
from vitals_service.alerts import age_on
from vitals_service.db import close_db_connection, get_session, init_db
from vitals_service.engine import (
    AlertAlreadyAcknowledged,
    PatientProfile,
    acknowledge_vital_alert,
    create_vital_range,
    create_vital_signs,
    get_vitals_trends,
    load_vital_ranges,
    update_vital_signs,
)
from vitals_service.models.models import VitalAlert, VitalSigns
from vitals_service.models.schemas import (
    AcknowledgeRequest,
    DependencyStatus,
    HealthCheckResponse,
    TimeRange,
    VitalAlertResponse,
    VitalRangeCreate,
    VitalRangeResponse,
    VitalSignsCreate,
    VitalSignsResponse,
    VitalSignsUpdate,
    VitalsTrend,
    VitalType,
)

# =====================================================
# Configuration & Middleware
# =====================================================
logger = logging.getLogger("vitals-service")
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)


class LoggingMiddleware(BaseHTTPMiddleware):
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
    """Service lifespan for startup/shutdown hooks."""
    try:
        init_db()
        logger.info("Vitals DB initialized.")
    except SQLAlchemyError as e:
        logger.error("Vitals DB init failed: %s", e)
    yield
    close_db_connection()


# Get the ROOT_PATH environment variable defined in docker-compose
root_path = os.getenv("ROOT_PATH", "")

app = FastAPI(title="Vitals Service", lifespan=lifespan, root_path=root_path)
app.add_middleware(LoggingMiddleware)

# =====================================================
# Dependencies (Redis, user-service)
# =====================================================
LATEST_CACHE_TTL_SECONDS = 600


def _redis_disabled() -> bool:
    return os.environ.get("DISABLE_REDIS", "false").lower() in ("1", "true", "yes")


redis_client: Optional[redis.Redis] = None
if not _redis_disabled():
    redis_client = redis.Redis(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", 6379)),
        decode_responses=True,
        socket_connect_timeout=1.0,
    )


def _require_admin(request: Request):
    token_env = os.environ.get("ADMIN_TOKEN")
    if not token_env:
        return True  # If not configured, do not block
    token_hdr = request.headers.get("X-Admin-Token")
    if token_hdr != token_env:
        raise HTTPException(status_code=403, detail="Forbidden")
    return True


def _fetch_patient_profile(patient_id: UUID4) -> Optional[PatientProfile]:
    """
    Look up age and gender from user-service, if configured.
    Any failure degrades to range selection without demographics.
    """
    base_url = os.environ.get("USER_SERVICE_URL")
    if not base_url:
        return None
    try:
        with httpx.Client(timeout=2.0) as client:
            resp = client.get(f"{base_url.rstrip('/')}/{patient_id}")
        if resp.status_code != 200:
            logger.warning(
                "Patient lookup for %s returned %s; using default range",
                patient_id,
                resp.status_code,
            )
            return None
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Patient lookup for %s failed: %s; using default range", patient_id, e)
        return None

    age = None
    dob = data.get("date_of_birth") or data.get("dateOfBirth")
    if dob:
        try:
            age = age_on(date.fromisoformat(dob[:10]), date.today())
        except ValueError:
            logger.warning("Unparseable date_of_birth for patient %s: %r", patient_id, dob)
    gender = data.get("gender") or data.get("sex")
    return PatientProfile(age=age, gender=gender.lower() if gender else None)


def _cache_latest(vital: VitalSignsResponse) -> None:
    if redis_client is None:
        return
    try:
        redis_client.setex(
            f"latest:{vital.patient_id}", LATEST_CACHE_TTL_SECONDS, vital.model_dump_json()
        )
    except RedisError as e:
        # If Redis fails, log and continue; DB has the source of truth
        logger.warning("Redis cache of latest vitals failed for patient %s: %s", vital.patient_id, e)


def _evict_latest(patient_id: uuid.UUID) -> None:
    if redis_client is None:
        return
    try:
        redis_client.delete(f"latest:{patient_id}")
    except RedisError:
        # best-effort cache cleanup
        logger.debug("Redis error deleting latest cache", exc_info=True)


def _get_vital_or_404(session: Session, vital_id: uuid.UUID) -> VitalSigns:
    vital = session.get(VitalSigns, vital_id)
    if not vital:
        raise HTTPException(status_code=404, detail="Vital signs not found")
    return vital


# =====================================================
# Health Check
# =====================================================


@app.get("/health", response_model=HealthCheckResponse)
def health(session: Session = Depends(get_session)):
    """Health check for the database and Redis."""
    dependencies = {}
    service_name = "vitals-service"

    start = time.time()
    try:
        session.execute(text("SELECT 1"))
        dependencies["database"] = DependencyStatus(
            status="healthy", response_time_ms=int((time.time() - start) * 1000)
        )
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        dependencies["database"] = DependencyStatus(status="unhealthy", error=str(e))

    if redis_client is not None:
        start = time.time()
        try:
            if redis_client.ping():
                dependencies["redis"] = DependencyStatus(
                    status="healthy", response_time_ms=int((time.time() - start) * 1000)
                )
            else:
                dependencies["redis"] = DependencyStatus(status="unhealthy", error="Ping failed")
        except RedisError as e:
            logger.error("Redis health check failed: %s", e)
            dependencies["redis"] = DependencyStatus(status="unhealthy", error=str(e))

    status = (
        "healthy" if all(dep.status == "healthy" for dep in dependencies.values()) else "unhealthy"
    )
    response = HealthCheckResponse(service=service_name, status=status, dependencies=dependencies)
    if status == "unhealthy":
        raise HTTPException(status_code=503, detail=response.model_dump())
    return response


# =====================================================
# Vital Signs
# =====================================================


@app.post("/vitals", response_model=VitalSignsResponse, status_code=201)
def record_vitals(payload: VitalSignsCreate, session: Session = Depends(get_session)):
    """
    1. Validate Data (sanity bounds, at least one vital)
    2. Check against the applicable normal range
    3. Save reading + alerts in one transaction
    4. Drop the cached latest reading; a backdated submission may not be the newest
    """
    profile = _fetch_patient_profile(payload.patient_id)
    try:
        vital = create_vital_signs(session, payload, profile)
    except SQLAlchemyError as e:
        raise HTTPException(status_code=500, detail=f"Database Write Failed: {str(e)}") from e

    _evict_latest(vital.patient_id)
    return VitalSignsResponse.from_record(vital)


@app.get("/vitals", response_model=List[VitalSignsResponse])
def list_vitals(patient_id: UUID4, session: Session = Depends(get_session)):
    """All readings of a patient, newest first."""
    rows = session.exec(
        select(VitalSigns)
        .where(VitalSigns.patient_id == patient_id)
        .order_by(VitalSigns.recorded_at.desc())
    ).all()
    return [VitalSignsResponse.from_record(r) for r in rows]


@app.get("/vitals/trends", response_model=VitalsTrend)
def vitals_trends(
    patient_id: UUID4,
    vital_type: VitalType,
    time_range: TimeRange = TimeRange.LAST_7_DAYS,
    session: Session = Depends(get_session),
):
    return get_vitals_trends(session, patient_id, vital_type, time_range)


@app.get("/vitals/{vital_id}", response_model=VitalSignsResponse)
def get_vitals(vital_id: uuid.UUID, session: Session = Depends(get_session)):
    return VitalSignsResponse.from_record(_get_vital_or_404(session, vital_id))


@app.patch("/vitals/{vital_id}", response_model=VitalSignsResponse)
def correct_vitals(
    vital_id: uuid.UUID, payload: VitalSignsUpdate, session: Session = Depends(get_session)
):
    vital = update_vital_signs(session, vital_id, payload.model_dump(exclude_unset=True))
    if not vital:
        raise HTTPException(status_code=404, detail="Vital signs not found")
    _evict_latest(vital.patient_id)
    return VitalSignsResponse.from_record(vital)


@app.delete("/vitals/{vital_id}", status_code=204)
def delete_vitals(vital_id: uuid.UUID, request: Request, session: Session = Depends(get_session)):
    """Admin only. Removes the reading; its alerts stay in the history, detached."""
    _require_admin(request)
    vital = _get_vital_or_404(session, vital_id)
    patient_id = vital.patient_id

    try:
        for alert in session.exec(
            select(VitalAlert).where(VitalAlert.vital_signs_id == vital.id)
        ).all():
            alert.vital_signs_id = None
            session.add(alert)
        session.flush()
        session.delete(vital)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise HTTPException(status_code=500, detail=f"Deletion failed: {e}") from e

    _evict_latest(patient_id)
    return None


@app.get("/patients/{patient_id}/latest", response_model=VitalSignsResponse)
def get_latest_vitals(patient_id: UUID4, session: Session = Depends(get_session)):
    """
    Return the most recent reading for a patient.
    1) Try Redis cache
    2) Fallback to DB (newest recorded_at)
    """
    cache_key = f"latest:{patient_id}"
    if redis_client is not None:
        try:
            cached = redis_client.get(cache_key)
            if cached:
                return VitalSignsResponse.model_validate_json(cached)
        except RedisError as e:
            logger.warning("Redis get latest failed for patient %s: %s", patient_id, e)

    result = session.exec(
        select(VitalSigns)
        .where(VitalSigns.patient_id == patient_id)
        .order_by(VitalSigns.recorded_at.desc())
        .limit(1)
    ).first()
    if not result:
        raise HTTPException(status_code=404, detail="No vitals found for patient")

    response = VitalSignsResponse.from_record(result)
    _cache_latest(response)
    return response


# =====================================================
# Normal Ranges
# =====================================================


@app.get("/ranges", response_model=List[VitalRangeResponse])
def list_ranges(session: Session = Depends(get_session)):
    return load_vital_ranges(session)


@app.post("/ranges", response_model=VitalRangeResponse, status_code=201)
def add_range(payload: VitalRangeCreate, request: Request, session: Session = Depends(get_session)):
    _require_admin(request)
    created_by = request.headers.get("X-User-ID", "admin")
    return create_vital_range(session, payload.model_dump(), created_by)


# =====================================================
# Alerts
# =====================================================


@app.get("/alerts", response_model=List[VitalAlertResponse])
def list_alerts(
    patient_id: Optional[UUID4] = None,
    unacknowledged_only: bool = False,
    session: Session = Depends(get_session),
):
    """Alert history, newest first."""
    stmt = select(VitalAlert).order_by(VitalAlert.created_at.desc())
    if patient_id is not None:
        stmt = stmt.where(VitalAlert.patient_id == patient_id)
    if unacknowledged_only:
        stmt = stmt.where(VitalAlert.is_acknowledged == False)  # noqa: E712
    return session.exec(stmt).all()


@app.post("/alerts/{alert_id}/acknowledge", response_model=VitalAlertResponse)
def acknowledge_alert(
    alert_id: uuid.UUID, payload: AcknowledgeRequest, session: Session = Depends(get_session)
):
    try:
        alert = acknowledge_vital_alert(session, alert_id, payload.acknowledged_by)
    except AlertAlreadyAcknowledged:
        raise HTTPException(status_code=409, detail="Alert already acknowledged")
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert
