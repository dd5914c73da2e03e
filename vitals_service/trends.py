"""
Trend summaries over a patient's recorded vitals

- Window is a lookback from "now" (24h, 7d, 30d, 90d, 1y)
- Records missing the requested vital are dropped, not zero-filled
- Trend label compares the average of the first half of the points with
  the second half; any alerted point in the window makes it "concerning"
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from vitals_service.models.models import VitalSigns
from vitals_service.models.schemas import (
    BloodPressure,
    BloodPressureAverage,
    TimeRange,
    TrendDirection,
    TrendPoint,
    VitalsTrend,
    VitalType,
)

TIME_RANGE_WINDOWS = {
    TimeRange.LAST_24_HOURS: timedelta(days=1),
    TimeRange.LAST_7_DAYS: timedelta(days=7),
    TimeRange.LAST_30_DAYS: timedelta(days=30),
    TimeRange.LAST_90_DAYS: timedelta(days=90),
    TimeRange.LAST_YEAR: timedelta(days=365),
}

# Below this many points there is no meaningful two-halves comparison
MIN_POINTS_FOR_TREND = 4

# Relative change (%) under which a series counts as stable
STABLE_CHANGE_PERCENT = 5

# Change magnitude (%) still counted as improving for these vitals
IMPROVING_BAND_PERCENT = {
    VitalType.HEART_RATE: 10,
    VitalType.BLOOD_SUGAR: 15,
}

_NUMERIC_FIELDS = {
    VitalType.HEART_RATE: "heart_rate",
    VitalType.TEMPERATURE: "temperature",
    VitalType.OXYGEN_SATURATION: "oxygen_saturation",
    VitalType.WEIGHT: "weight_kg",
    VitalType.BLOOD_SUGAR: "blood_sugar",
}


def ensure_utc(ts: datetime) -> datetime:
    """Naive timestamps are stored as UTC."""
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def window_start(time_range: TimeRange, now: datetime) -> datetime:
    return ensure_utc(now) - TIME_RANGE_WINDOWS[TimeRange(time_range)]


def _point(record: VitalSigns, vital_type: VitalType) -> Optional[TrendPoint]:
    if vital_type == VitalType.BLOOD_PRESSURE:
        if record.systolic_bp is None or record.diastolic_bp is None:
            return None
        value = BloodPressure(systolic=record.systolic_bp, diastolic=record.diastolic_bp)
    else:
        raw = getattr(record, _NUMERIC_FIELDS[vital_type])
        if raw is None:
            return None
        value = float(raw)

    return TrendPoint(
        date=ensure_utc(record.recorded_at),
        value=value,
        is_alert=vital_type.value in (record.alerted_values or []),
    )


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _scalar(point: TrendPoint) -> float:
    # Blood pressure halves are compared on systolic and diastolic together
    if isinstance(point.value, BloodPressure):
        return (point.value.systolic + point.value.diastolic) / 2
    return point.value


def classify_trend(points: List[TrendPoint], vital_type: VitalType) -> TrendDirection:
    if len(points) < MIN_POINTS_FOR_TREND:
        return TrendDirection.STABLE
    if any(p.is_alert for p in points):
        return TrendDirection.CONCERNING

    mid = len(points) // 2
    first_avg = _mean([_scalar(p) for p in points[:mid]])
    second_avg = _mean([_scalar(p) for p in points[mid:]])
    change = ((second_avg - first_avg) / first_avg) * 100 if first_avg else 0.0

    if abs(change) < STABLE_CHANGE_PERCENT:
        return TrendDirection.STABLE
    if vital_type == VitalType.BLOOD_PRESSURE and change < 0:
        return TrendDirection.IMPROVING
    if vital_type == VitalType.OXYGEN_SATURATION and change > 0:
        return TrendDirection.IMPROVING
    band = IMPROVING_BAND_PERCENT.get(vital_type)
    if band is not None and abs(change) < band:
        return TrendDirection.IMPROVING
    return TrendDirection.DECLINING


def compute_vitals_trend(
    records: Sequence[VitalSigns],
    patient_id,
    vital_type: VitalType,
    time_range: TimeRange,
    now: Optional[datetime] = None,
) -> VitalsTrend:
    """
    Summarize one vital for one patient over a lookback window.

    Args:
        records: The patient's readings (any order, may extend past the window)
        patient_id: Patient the records belong to
        vital_type: Which vital to project
        time_range: Lookback window
        now: Reference time, defaults to the current UTC time

    Returns:
        VitalsTrend with points in ascending time order, the average and the
        trend label
    """
    vital_type = VitalType(vital_type)
    time_range = TimeRange(time_range)
    now = ensure_utc(now or datetime.now(timezone.utc))
    start = window_start(time_range, now)

    in_window = sorted(
        (r for r in records if ensure_utc(r.recorded_at) >= start),
        key=lambda r: ensure_utc(r.recorded_at),
    )
    points = [p for p in (_point(r, vital_type) for r in in_window) if p is not None]

    average = None
    if points:
        if vital_type == VitalType.BLOOD_PRESSURE:
            average = BloodPressureAverage(
                systolic=_mean([p.value.systolic for p in points]),
                diastolic=_mean([p.value.diastolic for p in points]),
            )
        else:
            average = _mean([p.value for p in points])

    return VitalsTrend(
        patient_id=patient_id,
        vital_type=vital_type,
        time_range=time_range,
        data_points=points,
        average_value=average,
        trend=classify_trend(points, vital_type),
        generated_at=now,
    )
