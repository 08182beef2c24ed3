# backend/services/settings.py
import os
from dataclasses import dataclass
from typing import Optional

FETCH_TIMEOUT_SECONDS = float(os.getenv('FETCH_TIMEOUT_SECONDS', '3.0'))
RADAR_TIMEOUT_SECONDS = float(os.getenv('RADAR_TIMEOUT_SECONDS', '10.0'))

WAQI_API_BASE = os.getenv('WAQI_API_BASE', 'https://api.waqi.info')
NWS_API_BASE = os.getenv('NWS_API_BASE', 'https://api.weather.gov')
AIRNOW_API_BASE = os.getenv('AIRNOW_API_BASE', 'https://www.airnowapi.org')
NWS_RADAR_BASE = os.getenv('NWS_RADAR_BASE', 'https://radar.weather.gov/ridge/standard')

# NWS and AirNow only publish data for these country codes
COVERED_COUNTRIES = frozenset({'US'})

AIRNOW_SEARCH_DISTANCE_MILES = 75

DEFAULT_LATITUDE = 40.712778
DEFAULT_LONGITUDE = -74.006111
DEFAULT_TIMEZONE = 'America/New_York'

RATE_LIMIT_DEFAULTS = [
    limit.strip()
    for limit in os.getenv('RATE_LIMIT_DEFAULTS', '3000 per day;500 per hour').split(';')
    if limit.strip()
]


@dataclass(frozen=True)
class Credentials:
    waqi_token: Optional[str] = None
    nws_agent: Optional[str] = None
    airnow_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'Credentials':
        return cls(
            waqi_token=os.getenv('WAQI_TOKEN') or None,
            nws_agent=os.getenv('NWS_AGENT') or None,
            airnow_key=os.getenv('AIRNOW_KEY') or None,
        )
