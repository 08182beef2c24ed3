"""Validated shapes for every provider payload the page consumes.

Each model mirrors only the fields the page reads. Parsing a payload that
lacks a required field raises ``pydantic.ValidationError``, which the
adapters turn into a structurally-invalid outcome.
"""

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# WAQI ---------------------------------------------------------------------

class WaqiValue(ProviderModel):
    v: Optional[float] = None


class WaqiCity(ProviderModel):
    name: str
    url: str = ''


class WaqiTime(ProviderModel):
    iso: Optional[datetime] = None


class WaqiData(ProviderModel):
    aqi: Optional[int] = None
    city: WaqiCity
    iaqi: Dict[str, WaqiValue] = Field(default_factory=dict)
    time: WaqiTime = Field(default_factory=WaqiTime)

    @field_validator('aqi', mode='before')
    @classmethod
    def blank_aqi(cls, value):
        # stations without a reading report "-"
        if isinstance(value, str) and not value.strip().lstrip('-').isdigit():
            return None
        return value


class WaqiFeed(ProviderModel):
    status: Literal['ok']
    data: WaqiData


class AirQualityObservation(ProviderModel):
    aqi: Optional[int] = None
    pm25: Optional[float] = None
    pm10: Optional[float] = None
    o3: Optional[float] = None
    no2: Optional[float] = None
    so2: Optional[float] = None
    co: Optional[float] = None
    temperature_c: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed_mps: Optional[float] = None
    observed_at: Optional[datetime] = None
    station_name: str = ''
    station_url: str = ''

    @classmethod
    def from_feed(cls, feed: WaqiFeed) -> 'AirQualityObservation':
        data = feed.data

        def reading(key: str) -> Optional[float]:
            value = data.iaqi.get(key)
            return value.v if value else None

        return cls(
            aqi=data.aqi,
            pm25=reading('pm25'),
            pm10=reading('pm10'),
            o3=reading('o3'),
            no2=reading('no2'),
            so2=reading('so2'),
            co=reading('co'),
            temperature_c=reading('t'),
            humidity=reading('h'),
            wind_speed_mps=reading('w'),
            observed_at=data.time.iso,
            station_name=data.city.name,
            station_url=data.city.url,
        )


# AirNow -------------------------------------------------------------------

class AirNowCategory(ProviderModel):
    number: int = Field(alias='Number')
    name: str = Field(alias='Name')


def _airnow_date(value):
    # AirNow pads dates with a trailing space, e.g. "2025-07-01 "
    if isinstance(value, str):
        return value.strip()
    return value


class AirNowReading(ProviderModel):
    parameter_name: str = Field(alias='ParameterName')
    aqi: Optional[int] = Field(None, alias='AQI')
    category: AirNowCategory = Field(alias='Category')
    reporting_area: str = Field('', alias='ReportingArea')
    state_code: str = Field('', alias='StateCode')
    date_observed: Optional[date] = Field(None, alias='DateObserved')
    hour_observed: Optional[int] = Field(None, alias='HourObserved')
    local_time_zone: str = Field('', alias='LocalTimeZone')

    @field_validator('date_observed', mode='before')
    @classmethod
    def strip_date(cls, value):
        return _airnow_date(value)


class SecondaryForecastEntry(ProviderModel):
    parameter_name: str = Field(alias='ParameterName')
    aqi: Optional[int] = Field(None, alias='AQI')
    category: AirNowCategory = Field(alias='Category')
    date_forecast: date = Field(alias='DateForecast')
    action_day: bool = Field(False, alias='ActionDay')
    discussion: str = Field('', alias='Discussion')
    reporting_area: str = Field('', alias='ReportingArea')
    state_code: str = Field('', alias='StateCode')

    @field_validator('date_forecast', mode='before')
    @classmethod
    def strip_date(cls, value):
        return _airnow_date(value)

    @field_validator('aqi', mode='before')
    @classmethod
    def negative_is_missing(cls, value):
        # forecasts without a numeric index carry AQI = -1
        if value is not None and int(value) < 0:
            return None
        return value

    @field_validator('discussion', mode='before')
    @classmethod
    def discussion_text(cls, value):
        return value if isinstance(value, str) else ''


class AirNowSummaryEntry(ProviderModel):
    aqi: Optional[int] = None
    category: str = ''


class AirNowSummary(ProviderModel):
    overall: AirNowSummaryEntry
    pm25: Optional[AirNowSummaryEntry] = None
    pm10: Optional[AirNowSummaryEntry] = None
    o3: Optional[AirNowSummaryEntry] = None
    reporting_area: str = ''
    state_code: str = ''
    date_observed: Optional[date] = None
    hour_observed: Optional[int] = None
    local_time_zone: str = ''

    @classmethod
    def from_readings(cls, readings: List[AirNowReading]) -> 'AirNowSummary':
        first = readings[0]
        worst = max(readings, key=lambda r: r.aqi if r.aqi is not None else -1)
        by_parameter = {}
        for reading in readings:
            name = reading.parameter_name.upper()
            entry = AirNowSummaryEntry(aqi=reading.aqi, category=reading.category.name)
            if 'PM2.5' in name:
                by_parameter['pm25'] = entry
            elif 'PM10' in name:
                by_parameter['pm10'] = entry
            elif 'O3' in name:
                by_parameter['o3'] = entry
        return cls(
            overall=AirNowSummaryEntry(aqi=worst.aqi, category=worst.category.name),
            reporting_area=first.reporting_area,
            state_code=first.state_code,
            date_observed=first.date_observed,
            hour_observed=first.hour_observed,
            local_time_zone=first.local_time_zone,
            **by_parameter,
        )


# NWS ----------------------------------------------------------------------

def _last_segment(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return url.rstrip('/').rsplit('/', 1)[-1] or None


class WeatherLocation(ProviderModel):
    forecast_url: str = Field(alias='forecast')
    county_url: str = Field(alias='county')
    grid_id: str = Field(alias='gridId')
    grid_x: Optional[int] = Field(None, alias='gridX')
    grid_y: Optional[int] = Field(None, alias='gridY')
    forecast_zone_url: Optional[str] = Field(None, alias='forecastZone')
    radar_station: Optional[str] = Field(None, alias='radarStation')
    observation_stations_url: Optional[str] = Field(None, alias='observationStations')

    @property
    def county_zone_id(self) -> Optional[str]:
        return _last_segment(self.county_url)

    @property
    def forecast_zone_id(self) -> Optional[str]:
        return _last_segment(self.forecast_zone_url)


class NwsPoints(ProviderModel):
    properties: WeatherLocation


class ForecastPeriod(ProviderModel):
    name: str
    detailed_forecast: str = Field(alias='detailedForecast')
    short_forecast: str = Field('', alias='shortForecast')
    icon: str = ''
    temperature: Optional[float] = None
    temperature_unit: str = Field('', alias='temperatureUnit')


class NwsForecastProperties(ProviderModel):
    periods: List[ForecastPeriod]


class NwsForecast(ProviderModel):
    properties: NwsForecastProperties


class AlertRecord(ProviderModel):
    event: str = ''
    headline: Optional[str] = None
    description: str = ''
    instruction: Optional[str] = None
    severity: str = ''
    urgency: str = ''
    certainty: str = ''
    response: str = ''
    status: str = ''
    area_desc: str = Field('', alias='areaDesc')
    onset: Optional[datetime] = None
    effective: Optional[datetime] = None
    ends: Optional[datetime] = None
    expires: Optional[datetime] = None
    sent: Optional[datetime] = None
    sender_name: str = Field('', alias='senderName')

    @field_validator('description', mode='before')
    @classmethod
    def text_or_empty(cls, value):
        return value or ''


class AlertFeature(ProviderModel):
    properties: AlertRecord


class NwsAlerts(ProviderModel):
    features: List[AlertFeature]


class Quantity(ProviderModel):
    value: Optional[float] = None
    unit_code: str = Field('', alias='unitCode')


class WeatherObservation(ProviderModel):
    station: str = ''
    timestamp: Optional[datetime] = None
    text_description: str = Field('', alias='textDescription')
    temperature: Quantity = Field(default_factory=Quantity)
    relative_humidity: Quantity = Field(default_factory=Quantity, alias='relativeHumidity')
    wind_speed: Quantity = Field(default_factory=Quantity, alias='windSpeed')

    @property
    def station_id(self) -> Optional[str]:
        return _last_segment(self.station)


class ObservationFeature(ProviderModel):
    properties: WeatherObservation


class NwsObservations(ProviderModel):
    features: List[ObservationFeature]
