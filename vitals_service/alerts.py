"""Threshold checks for recorded vital signs.

A reading is compared against one applicable `VitalRange`. Every vital that
falls outside its normal bounds yields one unsaved `VitalAlert`, with a
severity taken from fixed clinical cut-offs that do not depend on the range:

    vital               critical               high                   otherwise
    blood pressure      sys>180 or dia>120     sys>160 or dia>100     medium if sys<90 or dia<60, else low
    heart rate          <40 or >150            <50 or >120            medium
    temperature (C)     >39.0 or <35.0         >38.5 or <35.5         medium
    oxygen saturation   <88                    <92                    medium
    blood sugar         >300 or <50            >250 or <60            medium

Oxygen saturation only alerts below its minimum. Weight is never alerted.
"""

import json
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

from vitals_service.models.models import VitalAlert, VitalRange, VitalSigns
from vitals_service.models.schemas import AlertSeverity, Gender, VitalType

# Seeded when no ranges are configured. Order matters: the first default wins.
DEFAULT_VITAL_RANGES = [
    {
        "name": "Adult Default",
        "age_min": 18,
        "age_max": 65,
        "gender": Gender.ALL,
        "blood_pressure_systolic_min": 90,
        "blood_pressure_systolic_max": 140,
        "blood_pressure_diastolic_min": 60,
        "blood_pressure_diastolic_max": 90,
        "heart_rate_min": 60,
        "heart_rate_max": 100,
        "temperature_min": 36.1,
        "temperature_max": 37.2,
        "oxygen_saturation_min": 95,
        "oxygen_saturation_max": 100,
        "blood_sugar_min": 70,
        "blood_sugar_max": 140,
        "is_default": True,
        "created_by": "system",
    },
    {
        "name": "Senior Default",
        "age_min": 65,
        "age_max": None,
        "gender": Gender.ALL,
        "blood_pressure_systolic_min": 90,
        "blood_pressure_systolic_max": 150,
        "blood_pressure_diastolic_min": 60,
        "blood_pressure_diastolic_max": 90,
        "heart_rate_min": 50,
        "heart_rate_max": 100,
        "temperature_min": 36.1,
        "temperature_max": 37.2,
        "oxygen_saturation_min": 95,
        "oxygen_saturation_max": 100,
        "blood_sugar_min": 70,
        "blood_sugar_max": 180,
        "is_default": True,
        "created_by": "system",
    },
]


@dataclass
class AlertCheck:
    alerted_values: List[str] = field(default_factory=list)
    alerts: List[VitalAlert] = field(default_factory=list)

    @property
    def has_alerts(self) -> bool:
        return len(self.alerts) > 0


# =====================================================
# Range selection
# =====================================================


def age_on(date_of_birth: date, today: date) -> int:
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def _first_default(ranges: Sequence[VitalRange]) -> Optional[VitalRange]:
    for vital_range in ranges:
        if vital_range.is_default:
            return vital_range
    return ranges[0] if ranges else None


def _matches_patient(vital_range: VitalRange, age: Optional[int], gender: Optional[str]) -> bool:
    if age is not None:
        if vital_range.age_min is not None and age < vital_range.age_min:
            return False
        if vital_range.age_max is not None and age > vital_range.age_max:
            return False
    if gender is not None and vital_range.gender not in (Gender.ALL, gender):
        return False
    return True


def select_applicable_range(
    ranges: Sequence[VitalRange], age: Optional[int] = None, gender: Optional[str] = None
) -> Optional[VitalRange]:
    """
    Pick the one range a reading is checked against.

    Without demographics this is the first range flagged `is_default`, else
    the first range. With an age and/or gender, only ranges covering the
    patient are considered first; if none do, the plain rule applies.
    """
    if not ranges:
        return None
    if age is None and gender is None:
        return _first_default(ranges)

    matching = [r for r in ranges if _matches_patient(r, age, gender)]
    return _first_default(matching) or _first_default(ranges)


# =====================================================
# Severity classification
# =====================================================


def blood_pressure_severity(systolic: float, diastolic: float) -> AlertSeverity:
    if systolic > 180 or diastolic > 120:
        return AlertSeverity.CRITICAL
    if systolic > 160 or diastolic > 100:
        return AlertSeverity.HIGH
    if systolic < 90 or diastolic < 60:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def heart_rate_severity(value: float) -> AlertSeverity:
    if value < 40 or value > 150:
        return AlertSeverity.CRITICAL
    if value < 50 or value > 120:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


def temperature_severity(value: float) -> AlertSeverity:
    if value > 39.0 or value < 35.0:
        return AlertSeverity.CRITICAL
    if value > 38.5 or value < 35.5:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


def oxygen_saturation_severity(value: float) -> AlertSeverity:
    if value < 88:
        return AlertSeverity.CRITICAL
    if value < 92:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


def blood_sugar_severity(value: float) -> AlertSeverity:
    if value > 300 or value < 50:
        return AlertSeverity.CRITICAL
    if value > 250 or value < 60:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


# =====================================================
# Alert checks
# =====================================================


def _outside(value: float, low: Optional[float], high: Optional[float]) -> bool:
    if low is not None and value < low:
        return True
    if high is not None and value > high:
        return True
    return False


def _number(value: float) -> str:
    # 155.0 -> "155", 38.6 -> "38.6"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return json.dumps(value)


def _new_alert(
    vital: VitalSigns,
    vital_type: VitalType,
    actual_value: str,
    expected_range: dict,
    severity: AlertSeverity,
) -> VitalAlert:
    return VitalAlert(
        patient_id=vital.patient_id,
        vital_signs_id=vital.id,
        caregiver_id=vital.caregiver_id,
        vital_type=vital_type,
        actual_value=actual_value,
        expected_range=json.dumps(expected_range),
        severity=severity,
        is_acknowledged=False,
        notifications_sent=[],
    )


def check_vital_alerts(vital: VitalSigns, vital_range: Optional[VitalRange]) -> AlertCheck:
    """
    Compare one reading against a range.

    Vitals not present on the reading, or whose bounds are missing from the
    range, are skipped without error.
    """
    result = AlertCheck()
    if vital_range is None:
        return result

    def record(vital_type, actual_value, expected_range, severity):
        result.alerted_values.append(vital_type.value)
        result.alerts.append(_new_alert(vital, vital_type, actual_value, expected_range, severity))

    # Blood pressure
    if vital.systolic_bp is not None and vital.diastolic_bp is not None:
        r = vital_range
        if _outside(
            vital.systolic_bp, r.blood_pressure_systolic_min, r.blood_pressure_systolic_max
        ) or _outside(
            vital.diastolic_bp, r.blood_pressure_diastolic_min, r.blood_pressure_diastolic_max
        ):
            record(
                VitalType.BLOOD_PRESSURE,
                json.dumps({"systolic": vital.systolic_bp, "diastolic": vital.diastolic_bp}),
                {
                    "systolicMin": r.blood_pressure_systolic_min,
                    "systolicMax": r.blood_pressure_systolic_max,
                    "diastolicMin": r.blood_pressure_diastolic_min,
                    "diastolicMax": r.blood_pressure_diastolic_max,
                },
                blood_pressure_severity(vital.systolic_bp, vital.diastolic_bp),
            )

    # Heart rate
    if vital.heart_rate is not None and _outside(
        vital.heart_rate, vital_range.heart_rate_min, vital_range.heart_rate_max
    ):
        record(
            VitalType.HEART_RATE,
            _number(vital.heart_rate),
            {"min": vital_range.heart_rate_min, "max": vital_range.heart_rate_max},
            heart_rate_severity(vital.heart_rate),
        )

    # Temperature
    if vital.temperature is not None and _outside(
        vital.temperature, vital_range.temperature_min, vital_range.temperature_max
    ):
        record(
            VitalType.TEMPERATURE,
            _number(vital.temperature),
            {"min": vital_range.temperature_min, "max": vital_range.temperature_max},
            temperature_severity(vital.temperature),
        )

    # Oxygen saturation: low values only
    if vital.oxygen_saturation is not None and _outside(
        vital.oxygen_saturation, vital_range.oxygen_saturation_min, None
    ):
        record(
            VitalType.OXYGEN_SATURATION,
            _number(vital.oxygen_saturation),
            {"min": vital_range.oxygen_saturation_min, "max": vital_range.oxygen_saturation_max},
            oxygen_saturation_severity(vital.oxygen_saturation),
        )

    # Blood sugar
    if vital.blood_sugar is not None and _outside(
        vital.blood_sugar, vital_range.blood_sugar_min, vital_range.blood_sugar_max
    ):
        record(
            VitalType.BLOOD_SUGAR,
            _number(vital.blood_sugar),
            {"min": vital_range.blood_sugar_min, "max": vital_range.blood_sugar_max},
            blood_sugar_severity(vital.blood_sugar),
        )

    return result
