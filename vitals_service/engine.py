"""Vitals alerting operations over the database.

`create_vital_signs` evaluates a new reading against the applicable normal
range and stores the reading together with its alerts in one transaction.
`get_vitals_trends` loads a patient's readings for a window and summarizes
them. Callers pass in an open session; persistence errors propagate.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from vitals_service.alerts import DEFAULT_VITAL_RANGES, check_vital_alerts, select_applicable_range
from vitals_service.models.models import VitalAlert, VitalRange, VitalSigns, utc_now
from vitals_service.models.schemas import (
    AlertSeverity,
    TimeRange,
    VitalSignsCreate,
    VitalsTrend,
    VitalType,
)
from vitals_service.trends import compute_vitals_trend, ensure_utc, window_start

logger = logging.getLogger("vitals-service")


class AlertAlreadyAcknowledged(Exception):
    """Raised when acknowledging an alert a second time."""


@dataclass
class PatientProfile:
    age: Optional[int] = None
    gender: Optional[str] = None


def to_utc(ts: datetime) -> datetime:
    """Naive input is read as UTC; aware input is converted to UTC."""
    return ensure_utc(ts).astimezone(timezone.utc)


# =====================================================
# Ranges
# =====================================================


def load_vital_ranges(session: Session) -> List[VitalRange]:
    """Return all ranges in creation order, seeding the built-in defaults if empty."""
    ranges = session.exec(select(VitalRange).order_by(VitalRange.created_at, VitalRange.name)).all()
    if ranges:
        return list(ranges)

    logger.warning("No vital ranges configured; seeding %d built-in defaults", len(DEFAULT_VITAL_RANGES))
    seeded = [VitalRange(**values) for values in DEFAULT_VITAL_RANGES]
    session.add_all(seeded)
    session.commit()
    for vital_range in seeded:
        session.refresh(vital_range)
    return seeded


def create_vital_range(session: Session, data: Dict[str, Any], created_by: str) -> VitalRange:
    vital_range = VitalRange(**data, created_by=created_by)
    session.add(vital_range)
    session.commit()
    session.refresh(vital_range)
    return vital_range


# =====================================================
# Vital Signs
# =====================================================


def create_vital_signs(
    session: Session, payload: VitalSignsCreate, profile: Optional[PatientProfile] = None
) -> VitalSigns:
    """
    1. Select the applicable normal range
    2. Check every supplied vital against it
    3. Save the reading and its alerts in one transaction
    Returns the saved reading (not the alerts).
    """
    ranges = load_vital_ranges(session)
    vital_range = select_applicable_range(
        ranges,
        age=profile.age if profile else None,
        gender=profile.gender if profile else None,
    )

    recorded_at = to_utc(payload.recorded_at or utc_now())
    bp = payload.blood_pressure
    vital = VitalSigns(
        patient_id=payload.patient_id,
        caregiver_id=payload.caregiver_id,
        recorded_at=recorded_at,
        systolic_bp=bp.systolic if bp else None,
        diastolic_bp=bp.diastolic if bp else None,
        heart_rate=payload.heart_rate,
        temperature=payload.temperature,
        oxygen_saturation=payload.oxygen_saturation,
        weight_kg=payload.weight,
        blood_sugar=payload.blood_sugar,
        notes=payload.notes,
    )

    check = check_vital_alerts(vital, vital_range)
    vital.is_alerted = check.has_alerts
    vital.alerted_values = check.alerted_values

    try:
        session.add(vital)
        # The reading must exist before the alerts that reference it
        session.flush()
        session.add_all(check.alerts)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    session.refresh(vital)

    for alert in check.alerts:
        if alert.severity == AlertSeverity.CRITICAL:
            logger.warning(
                "Critical %s alert for patient %s: value=%s expected=%s",
                alert.vital_type.value,
                alert.patient_id,
                alert.actual_value,
                alert.expected_range,
            )
    if check.has_alerts:
        logger.info(
            "Vitals %s for patient %s raised %d alert(s): %s",
            vital.id,
            vital.patient_id,
            len(check.alerts),
            ", ".join(check.alerted_values),
        )
    return vital


def update_vital_signs(
    session: Session, vital_id: uuid.UUID, updates: Dict[str, Any]
) -> Optional[VitalSigns]:
    """Apply note corrections. Alert flags are not re-evaluated."""
    vital = session.get(VitalSigns, vital_id)
    if not vital:
        return None
    for field, value in updates.items():
        setattr(vital, field, value)
    vital.updated_at = utc_now()
    session.add(vital)
    session.commit()
    session.refresh(vital)
    return vital


def get_vitals_trends(
    session: Session,
    patient_id: uuid.UUID,
    vital_type: VitalType,
    time_range: TimeRange,
    now: Optional[datetime] = None,
) -> VitalsTrend:
    now = ensure_utc(now or utc_now())
    start = window_start(time_range, now)
    records = session.exec(
        select(VitalSigns)
        .where(VitalSigns.patient_id == patient_id)
        .where(VitalSigns.recorded_at >= start)
        .order_by(VitalSigns.recorded_at.asc())
    ).all()
    return compute_vitals_trend(records, patient_id, vital_type, time_range, now)


# =====================================================
# Alerts
# =====================================================


def acknowledge_vital_alert(
    session: Session, alert_id: uuid.UUID, acknowledged_by: uuid.UUID
) -> Optional[VitalAlert]:
    alert = session.get(VitalAlert, alert_id)
    if not alert:
        return None
    if alert.is_acknowledged:
        raise AlertAlreadyAcknowledged(str(alert_id))

    alert.is_acknowledged = True
    alert.acknowledged_by = acknowledged_by
    alert.acknowledged_at = utc_now()
    session.add(alert)
    session.commit()
    session.refresh(alert)
    return alert
