# vitals_service/models/schemas.py
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import UUID4, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# camelCase on the wire, snake_case accepted on input
API_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =====================================================
# Enums
# =====================================================
class VitalType(str, Enum):
    BLOOD_PRESSURE = "bloodPressure"
    HEART_RATE = "heartRate"
    TEMPERATURE = "temperature"
    OXYGEN_SATURATION = "oxygenSaturation"
    WEIGHT = "weight"
    BLOOD_SUGAR = "bloodSugar"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Gender(str, Enum):
    ALL = "all"
    MALE = "male"
    FEMALE = "female"


class TimeRange(str, Enum):
    LAST_24_HOURS = "24h"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    LAST_YEAR = "1y"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    CONCERNING = "concerning"


# =====================================================
# Vital Signs
# =====================================================
class BloodPressure(BaseModel):
    systolic: int
    diastolic: int


class BloodPressureIn(BaseModel):
    """Blood pressure as entered; both values are required together."""

    systolic: int = Field(..., ge=50, le=250, description="mmHg")
    diastolic: int = Field(..., ge=30, le=150, description="mmHg")

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def check_systolic_above_diastolic(self):
        if self.systolic <= self.diastolic:
            raise ValueError("Systolic pressure must be higher than diastolic")
        return self


class VitalSignsCreate(BaseModel):
    """
    Input Payload: one caregiver submission. Bounds here are input sanity
    limits, not the alerting thresholds.
    """

    patient_id: UUID4
    caregiver_id: UUID4
    recorded_at: Optional[datetime] = None

    # --- Metrics (All Optional) ---
    blood_pressure: Optional[BloodPressureIn] = None
    heart_rate: Optional[int] = Field(None, ge=30, le=200, description="BPM")
    temperature: Optional[float] = Field(None, ge=30.0, le=45.0, description="Celsius")
    oxygen_saturation: Optional[float] = Field(None, ge=50, le=100, description="SpO2 %")
    weight: Optional[float] = Field(None, ge=10.0, le=300.0, description="kg")
    blood_sugar: Optional[float] = Field(None, ge=20, le=600, description="mg/dL")

    notes: Optional[str] = Field(None, max_length=2000)

    model_config = ConfigDict(**API_CONFIG, extra="forbid")

    @model_validator(mode="after")
    def check_at_least_one_vital(self):
        metrics = [
            "blood_pressure",
            "heart_rate",
            "temperature",
            "oxygen_saturation",
            "weight",
            "blood_sugar",
        ]
        if not any(getattr(self, m) is not None for m in metrics):
            raise ValueError("Please record at least one vital sign")
        return self


class VitalSignsUpdate(BaseModel):
    """Explicit corrections after the fact; readings themselves are immutable."""

    notes: Optional[str] = Field(None, max_length=2000)

    model_config = ConfigDict(**API_CONFIG, extra="forbid")


class VitalSignsResponse(BaseModel):
    id: UUID4
    patient_id: UUID4
    caregiver_id: UUID4
    recorded_at: datetime

    blood_pressure: Optional[BloodPressure] = None
    heart_rate: Optional[int] = None
    temperature: Optional[float] = None
    oxygen_saturation: Optional[float] = None
    weight: Optional[float] = None
    blood_sugar: Optional[float] = None
    notes: Optional[str] = None

    is_alerted: bool = False
    alerted_values: List[VitalType] = Field(default_factory=list)

    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = API_CONFIG

    @classmethod
    def from_record(cls, record) -> "VitalSignsResponse":
        blood_pressure = None
        if record.systolic_bp is not None and record.diastolic_bp is not None:
            blood_pressure = BloodPressure(
                systolic=record.systolic_bp, diastolic=record.diastolic_bp
            )
        return cls(
            id=record.id,
            patient_id=record.patient_id,
            caregiver_id=record.caregiver_id,
            recorded_at=record.recorded_at,
            blood_pressure=blood_pressure,
            heart_rate=record.heart_rate,
            temperature=record.temperature,
            oxygen_saturation=record.oxygen_saturation,
            weight=record.weight_kg,
            blood_sugar=record.blood_sugar,
            notes=record.notes,
            is_alerted=record.is_alerted,
            alerted_values=record.alerted_values or [],
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


# =====================================================
# Vital Ranges (reference data)
# =====================================================
_RANGE_PAIRS = [
    ("age_min", "age_max"),
    ("blood_pressure_systolic_min", "blood_pressure_systolic_max"),
    ("blood_pressure_diastolic_min", "blood_pressure_diastolic_max"),
    ("heart_rate_min", "heart_rate_max"),
    ("temperature_min", "temperature_max"),
    ("oxygen_saturation_min", "oxygen_saturation_max"),
    ("blood_sugar_min", "blood_sugar_max"),
    ("weight_min", "weight_max"),
]


class VitalRangeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    age_min: Optional[int] = Field(None, ge=0)
    age_max: Optional[int] = Field(None, ge=0)
    gender: Gender = Gender.ALL

    # A missing pair means that vital is not checked against this range
    blood_pressure_systolic_min: Optional[float] = None
    blood_pressure_systolic_max: Optional[float] = None
    blood_pressure_diastolic_min: Optional[float] = None
    blood_pressure_diastolic_max: Optional[float] = None
    heart_rate_min: Optional[float] = None
    heart_rate_max: Optional[float] = None
    temperature_min: Optional[float] = None
    temperature_max: Optional[float] = None
    oxygen_saturation_min: Optional[float] = None
    oxygen_saturation_max: Optional[float] = None
    blood_sugar_min: Optional[float] = None
    blood_sugar_max: Optional[float] = None
    weight_min: Optional[float] = None
    weight_max: Optional[float] = None

    is_default: bool = False

    model_config = API_CONFIG


class VitalRangeCreate(VitalRangeBase):
    model_config = ConfigDict(**API_CONFIG, extra="forbid")

    @model_validator(mode="after")
    def check_bounds_ordered(self):
        for low_name, high_name in _RANGE_PAIRS:
            low, high = getattr(self, low_name), getattr(self, high_name)
            if low is not None and high is not None and low > high:
                raise ValueError(f"{low_name} must not exceed {high_name}")
        return self


class VitalRangeResponse(VitalRangeBase):
    id: UUID4
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(**API_CONFIG, from_attributes=True)


# =====================================================
# Vital Alerts
# =====================================================
class VitalAlertResponse(BaseModel):
    id: UUID4
    patient_id: UUID4
    vital_signs_id: Optional[UUID4] = None
    caregiver_id: UUID4
    vital_type: VitalType

    # JSON-encoded: a number, or an object for blood pressure
    actual_value: str
    expected_range: str
    severity: AlertSeverity

    is_acknowledged: bool
    acknowledged_by: Optional[UUID4] = None
    acknowledged_at: Optional[datetime] = None
    notifications_sent: List[str] = Field(default_factory=list)
    created_at: datetime

    model_config = ConfigDict(**API_CONFIG, from_attributes=True)


class AcknowledgeRequest(BaseModel):
    """Payload for acknowledging an alert."""

    acknowledged_by: UUID4
    model_config = ConfigDict(**API_CONFIG, extra="forbid")


# =====================================================
# Trends
# =====================================================
class BloodPressureAverage(BaseModel):
    systolic: float
    diastolic: float


class TrendPoint(BaseModel):
    date: datetime
    value: Union[BloodPressure, float]
    is_alert: bool = False

    model_config = API_CONFIG


class VitalsTrend(BaseModel):
    patient_id: UUID4
    vital_type: VitalType
    time_range: TimeRange
    data_points: List[TrendPoint] = Field(default_factory=list)
    average_value: Optional[Union[BloodPressureAverage, float]] = None
    trend: TrendDirection = TrendDirection.STABLE
    generated_at: datetime

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
