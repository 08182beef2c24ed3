# backend/services/air_quality.py
import logging
from datetime import date
from typing import List, Optional
from urllib.parse import urlencode

import aiohttp
from pydantic import TypeAdapter

from services.fetching import ProviderOutcome, build_outcome, fetch_json
from services.location import GeoContext
from services.models import (
    AirNowReading,
    AirQualityObservation,
    SecondaryForecastEntry,
    WaqiFeed,
)
from services.settings import AIRNOW_API_BASE, AIRNOW_SEARCH_DISTANCE_MILES, WAQI_API_BASE

logger = logging.getLogger(__name__)

_readings = TypeAdapter(List[AirNowReading])
_forecast_entries = TypeAdapter(List[SecondaryForecastEntry])


class WaqiAdapter:
    """World Air Quality Index station feed nearest to the client."""

    provider = 'WAQI'

    def __init__(self, session: aiohttp.ClientSession, token: Optional[str]):
        self.session = session
        self.token = token

    def feed_url(self, geo: GeoContext) -> str:
        return f"{WAQI_API_BASE}/feed/geo:{geo.latitude};{geo.longitude}/?{urlencode({'token': self.token or ''})}"

    async def current(self, geo: GeoContext) -> ProviderOutcome:
        fetched = await fetch_json(self.session, self.feed_url(geo), enabled=bool(self.token))
        return build_outcome(self.provider, fetched, self._parse)

    @staticmethod
    def _parse(payload):
        observation = AirQualityObservation.from_feed(WaqiFeed.model_validate(payload))
        return observation, True


class AirNowAdapter:
    """EPA AirNow reporting-area observations and forecasts (US only)."""

    current_provider = 'AirNow sensor'
    forecast_provider = 'AirNow forecast'

    def __init__(self, session: aiohttp.ClientSession, api_key: Optional[str]):
        self.session = session
        self.api_key = api_key

    def _url(self, path: str, geo: GeoContext, **extra) -> str:
        params = {
            'format': 'application/json',
            'latitude': geo.latitude,
            'longitude': geo.longitude,
            **extra,
            'distance': AIRNOW_SEARCH_DISTANCE_MILES,
            'API_KEY': self.api_key or '',
        }
        return f"{AIRNOW_API_BASE}{path}?{urlencode(params)}"

    def current_url(self, geo: GeoContext) -> str:
        return self._url('/aq/observation/latLong/current/', geo)

    def forecast_url(self, geo: GeoContext, day: date) -> str:
        return self._url('/aq/forecast/latLong/', geo, date=day.isoformat())

    async def current(self, geo: GeoContext) -> ProviderOutcome:
        enabled = geo.coverage_region and bool(self.api_key)
        fetched = await fetch_json(self.session, self.current_url(geo), enabled=enabled)
        return build_outcome(self.current_provider, fetched, self._parse_readings)

    async def forecast(self, geo: GeoContext, day: date, enabled: bool) -> ProviderOutcome:
        enabled = enabled and bool(self.api_key)
        fetched = await fetch_json(self.session, self.forecast_url(geo, day), enabled=enabled)
        return build_outcome(self.forecast_provider, fetched, self._parse_forecast)

    @staticmethod
    def _parse_readings(payload):
        readings = _readings.validate_python(payload)
        return readings, len(readings) > 0

    @staticmethod
    def _parse_forecast(payload):
        entries = _forecast_entries.validate_python(payload)
        return entries, len(entries) > 0
