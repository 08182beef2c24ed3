# backend/services/aggregation.py
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Awaitable, Dict, List, Optional, Sequence, Tuple

import aiohttp

from services.air_quality import AirNowAdapter, WaqiAdapter
from services.fetching import Failed, FailureReason, ProviderOutcome
from services.location import GeoContext
from services.metrics import DerivedMetrics, derive_metrics
from services.models import AirNowSummary, SecondaryForecastEntry
from services.settings import Credentials
from services.weather import NwsAdapter

logger = logging.getLogger(__name__)


async def settle_all(calls: Sequence[Tuple[str, Awaitable[ProviderOutcome]]]) -> List[ProviderOutcome]:
    """Await every call and keep one outcome per call, in order.

    A call that raises instead of returning an outcome is recorded as
    unreachable; its siblings are unaffected.
    """
    results = await asyncio.gather(*(call for _, call in calls), return_exceptions=True)
    outcomes = []
    for (provider, _), result in zip(calls, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error(f"{provider} call raised {type(result).__name__}: {result}", exc_info=result)
            failure = Failed(FailureReason.UNREACHABLE, f"{type(result).__name__}: {result}")
            outcomes.append(ProviderOutcome.from_failure(provider, failure))
        else:
            outcomes.append(result)
    return outcomes


@dataclass(frozen=True)
class CurrentBundle:
    waqi: ProviderOutcome
    nws_points: ProviderOutcome
    airnow_current: ProviderOutcome
    metrics: Optional[DerivedMetrics] = None
    airnow_summary: Optional[AirNowSummary] = None

    @property
    def outcomes(self) -> List[ProviderOutcome]:
        return [self.waqi, self.nws_points, self.airnow_current]


@dataclass(frozen=True)
class AirNowForecastDay:
    label: str
    day: date
    entries: List[SecondaryForecastEntry]

    @property
    def action_day(self) -> bool:
        return any(entry.action_day for entry in self.entries)


@dataclass(frozen=True)
class ForecastBundle:
    forecast: ProviderOutcome
    alerts: ProviderOutcome
    observation: ProviderOutcome
    airnow_forecast: ProviderOutcome
    airnow_days: List[AirNowForecastDay] = field(default_factory=list)

    @property
    def outcomes(self) -> List[ProviderOutcome]:
        return [self.forecast, self.alerts, self.observation, self.airnow_forecast]


def day_label(day: date, today: date) -> str:
    if day == today:
        return 'Today'
    if day == today + timedelta(days=1):
        return 'Tomorrow'
    return day.strftime('%A')


def group_forecast_days(entries: Sequence[SecondaryForecastEntry], today: date) -> List[AirNowForecastDay]:
    """Group AirNow forecast entries by date, keeping provider order within a day."""
    by_day: Dict[date, List[SecondaryForecastEntry]] = {}
    for entry in entries:
        if entry.date_forecast < today:
            continue
        by_day.setdefault(entry.date_forecast, []).append(entry)
    return [
        AirNowForecastDay(label=day_label(day, today), day=day, entries=by_day[day])
        for day in sorted(by_day)
    ]


class Aggregator:
    """Runs the two fan-out rounds for one page.

    Round one needs nothing but the client's location. Round two is gated on
    what round one produced: NWS lookups need a resolved grid point and the
    AirNow forecast needs a current AirNow reading.
    """

    def __init__(self, session: aiohttp.ClientSession, credentials: Credentials):
        self.waqi = WaqiAdapter(session, credentials.waqi_token)
        self.nws = NwsAdapter(session, credentials.nws_agent)
        self.airnow = AirNowAdapter(session, credentials.airnow_key)

    async def round_one(self, geo: GeoContext) -> CurrentBundle:
        waqi, points, airnow = await settle_all([
            (WaqiAdapter.provider, self.waqi.current(geo)),
            (NwsAdapter.points_provider, self.nws.points(geo)),
            (AirNowAdapter.current_provider, self.airnow.current(geo)),
        ])

        metrics = None
        observation = waqi.data
        if observation is not None:
            metrics = derive_metrics(observation.temperature_c, observation.humidity, observation.wind_speed_mps)

        summary = AirNowSummary.from_readings(airnow.data) if airnow.data else None

        return CurrentBundle(
            waqi=waqi,
            nws_points=points,
            airnow_current=airnow,
            metrics=metrics,
            airnow_summary=summary,
        )

    async def round_two(self, geo: GeoContext, current: CurrentBundle, today: date) -> ForecastBundle:
        location = current.nws_points.data
        forecast, alerts, observation, airnow_forecast = await settle_all([
            (NwsAdapter.forecast_provider, self.nws.forecast(location)),
            (NwsAdapter.alerts_provider, self.nws.alerts(location)),
            (NwsAdapter.observations_provider, self.nws.observations(location)),
            (AirNowAdapter.forecast_provider,
             self.airnow.forecast(geo, today, enabled=current.airnow_current.data is not None)),
        ])

        days = group_forecast_days(airnow_forecast.data, today) if airnow_forecast.data else []

        return ForecastBundle(
            forecast=forecast,
            alerts=alerts,
            observation=observation,
            airnow_forecast=airnow_forecast,
            airnow_days=days,
        )
