# backend/services/composer.py
import asyncio
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Awaitable, Callable, Dict, Optional, Protocol
from urllib.parse import quote, urlparse

import aiohttp
from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

from services import indicators
from services.aggregation import Aggregator, CurrentBundle, ForecastBundle
from services.air_quality import AirNowAdapter, WaqiAdapter
from services.fetching import Failed, FailureReason, ProviderOutcome, Success
from services.location import GeoContext
from services.metrics import MPS_TO_MPH, celsius_to_fahrenheit, format_number
from services.settings import Credentials
from services.weather import NwsAdapter

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')

FORECAST_PERIODS_SHOWN = 4
RADAR_REFRESH_SECONDS = 120
EPA_MAP_HALF_WIDTH_M = 200000

SECTIONS = ('head', 'geolocation', 'current', 'forecast', 'footer')


class StreamSink(Protocol):
    async def write(self, fragment: str) -> None: ...

    async def close(self) -> None: ...


class QueueSink:
    """Sink backed by an ``asyncio.Queue``; ``None`` marks the end of the page."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def write(self, fragment: str) -> None:
        if self.closed:
            raise RuntimeError('write after close')
        await self.queue.put(fragment)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.queue.put(None)

    async def get(self) -> Optional[str]:
        return await self.queue.get()


def _localtime(value: Optional[datetime], zone: tzinfo) -> str:
    if value is None:
        return 'N/A'
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(zone).strftime('%m/%d/%Y, %H:%M:%S %Z')


def _paragraphs(text: Optional[str]) -> Markup:
    return escape(text or '').replace('\n\n', Markup('</p><p>'))


def _urlquote(value) -> str:
    return quote(str(value or ''), safe='')


def _is_url(value: Optional[str]) -> bool:
    if not value:
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(TEMPLATE_DIR),
        autoescape=select_autoescape(['html']),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters['fmt'] = format_number
    env.filters['localtime'] = _localtime
    env.filters['paragraphs'] = _paragraphs
    env.filters['urlquote'] = _urlquote
    env.tests['url'] = _is_url
    env.globals.update(
        aqi_to_emoji=indicators.aqi_to_emoji,
        aqi_category_to_emoji=indicators.aqi_category_to_emoji,
        dew_point_emoji=indicators.dew_point_emoji,
        forecast_icon_to_emoji=indicators.forecast_icon_to_emoji,
        alert_severity_to_emoji=indicators.alert_severity_to_emoji,
        alert_response_to_emoji=indicators.alert_response_to_emoji,
        alert_event_to_emoji=indicators.alert_event_to_emoji,
        user_agent_icon=indicators.user_agent_icon,
        status_glyph=indicators.status_glyph,
        celsius_to_fahrenheit=celsius_to_fahrenheit,
        mps_to_mph=MPS_TO_MPH,
        forecast_periods_shown=FORECAST_PERIODS_SHOWN,
        Markup=Markup,
    )
    return env


templates = build_environment()


@dataclass(frozen=True)
class PageContext:
    geo: GeoContext
    nonce: str
    now: datetime

    @property
    def zone(self) -> tzinfo:
        return self.geo.tzinfo

    @property
    def local_now(self) -> datetime:
        return self.now.astimezone(self.zone)

    @property
    def gradient(self) -> str:
        return indicators.to_css_gradient(self.local_now.hour)

    @property
    def palette(self):
        return indicators.daylight_palette(self.local_now.hour)

    @property
    def radar_bucket(self) -> int:
        return round(self.now.timestamp() / RADAR_REFRESH_SECONDS)

    @property
    def epa_bbox(self) -> Dict[str, float]:
        x = indicators.lon2x(self.geo.longitude)
        y = indicators.lat2y(self.geo.latitude)
        return {
            'xmin': x - EPA_MAP_HALF_WIDTH_M,
            'xmax': x + EPA_MAP_HALF_WIDTH_M,
            'ymin': y - EPA_MAP_HALF_WIDTH_M,
            'ymax': y + EPA_MAP_HALF_WIDTH_M,
        }


def render_fragment(name: str, page: PageContext, **context) -> str:
    return templates.get_template(f"{name}.html").render(page=page, geo=page.geo, nonce=page.nonce, **context)


def render_section_error(section: str, error: BaseException) -> str:
    return str(Markup('<p class="error">Unable to render {} section: {}</p>\n').format(
        section, f"{type(error).__name__}: {error}"))


def _unavailable(provider: str) -> ProviderOutcome:
    return ProviderOutcome.from_failure(provider, Failed(FailureReason.UNREACHABLE, 'not collected'))


class PageComposer:
    """Writes the page sections to a sink in order, one fragment per section."""

    def __init__(self, sink: StreamSink, page: PageContext, aggregator: Aggregator):
        self.sink = sink
        self.page = page
        self.aggregator = aggregator
        self.timings: Dict[str, float] = {}
        self.current: Optional[CurrentBundle] = None
        self.forecast: Optional[ForecastBundle] = None
        self.started = time.perf_counter()

    async def section(self, name: str, build: Callable[[], Awaitable[str]]) -> None:
        start = time.perf_counter()
        try:
            fragment = await build()
        except Exception as e:
            logger.exception(f"Failed to render {name} section")
            fragment = render_section_error(name, e)
        self.timings[name] = (time.perf_counter() - start) * 1000
        await self.sink.write(fragment)

    async def head(self) -> str:
        return render_fragment('head', self.page)

    async def geolocation(self) -> str:
        return render_fragment('geolocation', self.page)

    async def current_conditions(self) -> str:
        self.current = await self.aggregator.round_one(self.page.geo)
        observation = self.current.waqi.data
        return render_fragment(
            'current',
            self.page,
            current=self.current,
            observation=observation,
            metrics=self.current.metrics,
            airnow=self.current.airnow_summary,
            location=self.current.nws_points.data,
            airnow_readings=self.current.airnow_current.data,
        )

    async def forecast_and_alerts(self) -> str:
        if self.current is None:
            raise RuntimeError('current conditions were not collected')
        self.forecast = await self.aggregator.round_two(self.page.geo, self.current, self.page.local_now.date())
        return render_fragment(
            'forecast',
            self.page,
            location=self.current.nws_points.data,
            bundle=self.forecast,
            periods=self.forecast.forecast.data,
            alerts=self.forecast.alerts.data,
            alerts_empty=self.no_active_alerts(),
            observation=self.forecast.observation.data,
            airnow_days=self.forecast.airnow_days,
        )

    def no_active_alerts(self) -> bool:
        """True only for an alert query that succeeded and returned an empty list."""
        alerts = self.forecast.alerts
        return isinstance(alerts.result, Success) and not alerts.has_data

    def statuses(self):
        current, forecast = self.current, self.forecast
        return [
            current.waqi if current else _unavailable(WaqiAdapter.provider),
            current.nws_points if current else _unavailable(NwsAdapter.points_provider),
            forecast.forecast if forecast else _unavailable(NwsAdapter.forecast_provider),
            forecast.alerts if forecast else _unavailable(NwsAdapter.alerts_provider),
            forecast.observation if forecast else _unavailable(NwsAdapter.observations_provider),
            current.airnow_current if current else _unavailable(AirNowAdapter.current_provider),
            forecast.airnow_forecast if forecast else _unavailable(AirNowAdapter.forecast_provider),
        ]

    async def footer(self) -> str:
        elapsed_ms = (time.perf_counter() - self.started) * 1000
        return render_fragment('footer', self.page, outcomes=self.statuses(), elapsed_ms=elapsed_ms)

    async def run(self) -> None:
        await self.section('head', self.head)
        await self.section('geolocation', self.geolocation)
        await self.section('current', self.current_conditions)
        await self.section('forecast', self.forecast_and_alerts)
        await self.section('footer', self.footer)


async def render_page(sink: StreamSink,
                      geo: GeoContext,
                      credentials: Credentials,
                      nonce: str,
                      session: Optional[aiohttp.ClientSession] = None,
                      now: Optional[datetime] = None) -> None:
    """Stream the whole page into ``sink`` and close it exactly once.

    ``session`` and ``now`` are injectable for tests; by default a fresh
    ``aiohttp.ClientSession`` is opened for the page and closed afterwards.
    """
    page = PageContext(geo=geo, nonce=nonce, now=now or datetime.now(timezone.utc))
    owns_session = session is None
    try:
        if owns_session:
            session = aiohttp.ClientSession()
        composer = PageComposer(sink, page, Aggregator(session, credentials))
        await composer.run()
    finally:
        try:
            if owns_session and session is not None:
                await session.close()
        finally:
            await sink.close()

    total_ms = (time.perf_counter() - composer.started) * 1000
    timings = ', '.join(f"{name}={composer.timings.get(name, 0):.1f}ms" for name in SECTIONS)
    logger.info(f"Rendered page in {total_ms:.1f} ms ({timings})")
