# backend/services/weather.py
import logging
from typing import Dict, Optional

import aiohttp

from services.fetching import ProviderOutcome, build_outcome, fetch_json
from services.location import GeoContext
from services.models import NwsAlerts, NwsForecast, NwsObservations, NwsPoints, WeatherLocation
from services.settings import NWS_API_BASE

logger = logging.getLogger(__name__)


class NwsAdapter:
    """National Weather Service API client.

    ``points`` resolves the client's grid cell into a ``WeatherLocation``; the
    forecast, alert and observation lookups all hang off that location and
    are skipped without one.
    """

    points_provider = 'NWS location'
    forecast_provider = 'NWS forecast'
    alerts_provider = 'NWS alert'
    observations_provider = 'NWS observation'

    def __init__(self, session: aiohttp.ClientSession, user_agent: Optional[str]):
        self.session = session
        self.user_agent = user_agent

    @property
    def headers(self) -> Dict[str, str]:
        return {
            'Accept': 'application/geo+json',
            'User-Agent': self.user_agent or '',
        }

    async def _get(self, url: str, enabled: bool):
        enabled = enabled and bool(self.user_agent)
        return await fetch_json(self.session, url, headers=self.headers, enabled=enabled)

    def points_url(self, geo: GeoContext) -> str:
        return f"{NWS_API_BASE}/points/{geo.latitude},{geo.longitude}"

    def alerts_url(self, location: Optional[WeatherLocation]) -> str:
        zone = location.county_zone_id if location else ''
        return f"{NWS_API_BASE}/alerts/active/zone/{zone or ''}"

    def observations_url(self, location: Optional[WeatherLocation]) -> str:
        zone = location.forecast_zone_id if location else ''
        return f"{NWS_API_BASE}/zones/forecast/{zone or ''}/observations?limit=1"

    async def points(self, geo: GeoContext) -> ProviderOutcome:
        fetched = await self._get(self.points_url(geo), geo.coverage_region)
        return build_outcome(self.points_provider, fetched,
                             lambda payload: (NwsPoints.model_validate(payload).properties, True))

    async def forecast(self, location: Optional[WeatherLocation]) -> ProviderOutcome:
        url = location.forecast_url if location else f"{NWS_API_BASE}/gridpoints"
        fetched = await self._get(url, location is not None)
        return build_outcome(self.forecast_provider, fetched, self._parse_forecast)

    async def alerts(self, location: Optional[WeatherLocation]) -> ProviderOutcome:
        enabled = location is not None and location.county_zone_id is not None
        fetched = await self._get(self.alerts_url(location), enabled)
        return build_outcome(self.alerts_provider, fetched, self._parse_alerts)

    async def observations(self, location: Optional[WeatherLocation]) -> ProviderOutcome:
        enabled = location is not None and location.forecast_zone_id is not None
        fetched = await self._get(self.observations_url(location), enabled)
        return build_outcome(self.observations_provider, fetched, self._parse_observations)

    @staticmethod
    def _parse_forecast(payload):
        periods = NwsForecast.model_validate(payload).properties.periods
        return periods, len(periods) > 0

    @staticmethod
    def _parse_alerts(payload):
        # an empty feature list is a valid "no active alerts" answer
        alerts = [feature.properties for feature in NwsAlerts.model_validate(payload).features]
        return alerts, len(alerts) > 0

    @staticmethod
    def _parse_observations(payload):
        features = NwsObservations.model_validate(payload).features
        if not features:
            return None, False
        return features[0].properties, True
