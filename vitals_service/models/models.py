# vitals_service/models/models.py

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from .schemas import AlertSeverity, Gender, VitalType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# --- Table 1: Vital Signs ---
class VitalSigns(SQLModel, table=True):
    """One caregiver submission. Alert flags are derived once, at creation."""

    __tablename__ = "vital_signs"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    patient_id: uuid.UUID = Field(index=True, nullable=False)
    caregiver_id: uuid.UUID = Field(nullable=False)
    recorded_at: datetime = Field(default_factory=utc_now, index=True)

    # All optional
    systolic_bp: Optional[int] = Field(default=None)
    diastolic_bp: Optional[int] = Field(default=None)
    heart_rate: Optional[int] = Field(default=None)
    temperature: Optional[float] = Field(default=None)
    oxygen_saturation: Optional[float] = Field(default=None)
    weight_kg: Optional[float] = Field(default=None)
    blood_sugar: Optional[float] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    is_alerted: bool = Field(default=False)
    # Vital type names (e.g. "heartRate") that triggered alerts
    alerted_values: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)


# --- Table 2: Normal ranges ---
class VitalRange(SQLModel, table=True):
    """Normal bounds per vital for an age/gender group."""

    __tablename__ = "vital_ranges"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(nullable=False)

    # Inclusive bounds; None means open-ended
    age_min: Optional[int] = Field(default=None)
    age_max: Optional[int] = Field(default=None)
    gender: Gender = Field(default=Gender.ALL)

    blood_pressure_systolic_min: Optional[float] = Field(default=None)
    blood_pressure_systolic_max: Optional[float] = Field(default=None)
    blood_pressure_diastolic_min: Optional[float] = Field(default=None)
    blood_pressure_diastolic_max: Optional[float] = Field(default=None)
    heart_rate_min: Optional[float] = Field(default=None)
    heart_rate_max: Optional[float] = Field(default=None)
    temperature_min: Optional[float] = Field(default=None)
    temperature_max: Optional[float] = Field(default=None)
    oxygen_saturation_min: Optional[float] = Field(default=None)
    oxygen_saturation_max: Optional[float] = Field(default=None)
    blood_sugar_min: Optional[float] = Field(default=None)
    blood_sugar_max: Optional[float] = Field(default=None)
    weight_min: Optional[float] = Field(default=None)
    weight_max: Optional[float] = Field(default=None)

    is_default: bool = Field(default=False)
    created_by: str = Field(default="system")

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)


# --- Table 3: Alerts ---
class VitalAlert(SQLModel, table=True):
    """An out-of-range value found in a VitalSigns row."""

    __tablename__ = "vital_alerts"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    patient_id: uuid.UUID = Field(index=True, nullable=False)
    # NULL once the reading is deleted; alerts are kept as history
    vital_signs_id: Optional[uuid.UUID] = Field(default=None, foreign_key="vital_signs.id")
    caregiver_id: uuid.UUID = Field(nullable=False)

    vital_type: VitalType = Field(nullable=False)
    actual_value: str = Field(nullable=False)
    expected_range: str = Field(nullable=False)
    severity: AlertSeverity = Field(default=AlertSeverity.LOW)

    # Acknowledgement happens once
    is_acknowledged: bool = Field(default=False)
    acknowledged_by: Optional[uuid.UUID] = Field(default=None)
    acknowledged_at: Optional[datetime] = Field(default=None)

    # User IDs notified about this alert
    notifications_sent: List[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )

    created_at: datetime = Field(default_factory=utc_now)
