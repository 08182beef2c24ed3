# backend/services/metrics.py
import math
from dataclasses import dataclass
from typing import Optional

HEAT_INDEX_THRESHOLD_F = 80.0
# wind chill is only reported when the computed value is below this
WIND_CHILL_SHOWN_BELOW_F = 40.0

MPS_TO_MPH = 2.23694
KMH_TO_MPH = 0.621371


@dataclass(frozen=True)
class DerivedMetrics:
    heat_index_f: Optional[float] = None
    dew_point_f: Optional[float] = None
    wind_chill_f: Optional[float] = None


def celsius_to_fahrenheit(temp_c: float) -> float:
    return temp_c * 9.0 / 5.0 + 32.0


def _heat_index_raw(temp_f: float, humidity: float) -> float:
    # Rothfusz regression with the NWS adjustments, after the simple estimate
    heat_index = 0.5 * (temp_f + 61.0 + (temp_f - 68.0) * 1.2 + humidity * 0.094)
    if (temp_f + heat_index) / 2 <= 80:
        return heat_index

    heat_index = (-42.379
                  + 2.04901523 * temp_f
                  + 10.14333127 * humidity
                  - 0.22475541 * temp_f * humidity
                  - 0.00683783 * temp_f * temp_f
                  - 0.05481717 * humidity * humidity
                  + 0.00122874 * temp_f * temp_f * humidity
                  + 0.00085282 * temp_f * humidity * humidity
                  - 0.00000199 * temp_f * temp_f * humidity * humidity)

    if humidity < 13 and 80 < temp_f < 112:
        heat_index -= ((13 - humidity) / 4) * math.sqrt((17 - abs(temp_f - 95)) / 17)
    if humidity > 85 and 80 < temp_f < 87:
        heat_index += ((humidity - 85) / 10) * ((87 - temp_f) / 5)
    return heat_index


def heat_index(temp_f: Optional[float], humidity: Optional[float]) -> Optional[float]:
    if temp_f is None or humidity is None:
        return None
    value = _heat_index_raw(temp_f, humidity)
    if value <= HEAT_INDEX_THRESHOLD_F:
        return None
    return value


def dew_point_f(temp_c: Optional[float], humidity: Optional[float]) -> Optional[float]:
    """Dew point from the Lawrence (2005) approximation, in Fahrenheit."""
    if temp_c is None or humidity is None or not 0 < humidity <= 100:
        return None
    temp_k = temp_c + 273.15
    dew_point_c = (temp_c
                   - ((100 - humidity) / 5) * (temp_k / 300) ** 2
                   - 0.00135 * (humidity - 84) ** 2
                   + 0.35)
    return celsius_to_fahrenheit(dew_point_c)


def wind_chill(temp_f: Optional[float], wind_mph: Optional[float]) -> Optional[float]:
    if temp_f is None or wind_mph is None:
        return None
    factor = max(wind_mph, 0.0) ** 0.16
    value = 35.74 + 0.6215 * temp_f - 35.75 * factor + 0.4275 * temp_f * factor
    return value if value < WIND_CHILL_SHOWN_BELOW_F else None


def derive_metrics(temp_c: Optional[float],
                   humidity: Optional[float],
                   wind_mps: Optional[float]) -> DerivedMetrics:
    temp_f = celsius_to_fahrenheit(temp_c) if temp_c is not None else None
    wind_mph = wind_mps * MPS_TO_MPH if wind_mps is not None else None
    return DerivedMetrics(
        heat_index_f=heat_index(temp_f, humidity),
        dew_point_f=dew_point_f(temp_c, humidity),
        wind_chill_f=wind_chill(temp_f, wind_mph),
    )


def format_number(value: Optional[float], digits: int = 1) -> str:
    if value is None:
        return 'N/A'
    text = f"{value:,.{digits}f}"
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return '0' if text == '-0' else text
