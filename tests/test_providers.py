from datetime import date

import pytest

from fakes import (
    AIRNOW_CURRENT,
    AIRNOW_FORECAST,
    FR_GEO,
    NWS_ALERTS,
    NWS_FORECAST,
    NWS_OBSERVATIONS,
    NWS_POINTS,
    US_GEO,
    WAQI,
    FakeSession,
    Script,
    airnow_forecast,
    airnow_readings,
    nws_alerts,
    nws_forecast,
    nws_observations,
    nws_points,
    waqi_feed,
)
from services.air_quality import AirNowAdapter, WaqiAdapter
from services.fetching import FailureReason, ProviderStatus
from services.models import AirNowReading, AirNowSummary, WeatherLocation
from services.weather import NwsAdapter


def location():
    return WeatherLocation.model_validate(nws_points()['properties'])


class TestWaqiAdapter:
    @pytest.mark.asyncio
    async def test_parses_feed(self):
        session = FakeSession({WAQI: Script(waqi_feed(aqi=42, temp_c=25.0))})

        outcome = await WaqiAdapter(session, 'waqi-secret').current(US_GEO)

        assert outcome.status == ProviderStatus.DATA
        assert outcome.data.aqi == 42
        assert outcome.data.temperature_c == 25.0
        assert outcome.data.station_name == 'Topeka KNI, Kansas'
        assert session.calls[0][0] == 'https://api.waqi.info/feed/geo:39.7456;-97.0892/?token=waqi-secret'

    @pytest.mark.asyncio
    async def test_missing_token_is_skipped(self):
        session = FakeSession({WAQI: Script(waqi_feed())})

        outcome = await WaqiAdapter(session, None).current(US_GEO)

        assert outcome.status == ProviderStatus.SKIPPED
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_error_status_payload_is_structurally_invalid(self):
        session = FakeSession({WAQI: Script({'status': 'error', 'data': 'Invalid key'})})

        outcome = await WaqiAdapter(session, 'bad').current(US_GEO)

        assert outcome.request_ok is True
        assert outcome.result.reason == FailureReason.STRUCTURALLY_INVALID
        assert outcome.status == ProviderStatus.NO_DATA

    @pytest.mark.asyncio
    async def test_dash_aqi_means_no_reading(self):
        session = FakeSession({WAQI: Script(waqi_feed(aqi='-'))})

        outcome = await WaqiAdapter(session, 'waqi-secret').current(US_GEO)

        assert outcome.data.aqi is None

    @pytest.mark.asyncio
    async def test_works_outside_covered_region(self):
        session = FakeSession({WAQI: Script(waqi_feed())})

        outcome = await WaqiAdapter(session, 'waqi-secret').current(FR_GEO)

        assert outcome.status == ProviderStatus.DATA


class TestNwsAdapter:
    @pytest.mark.asyncio
    async def test_points_sends_geo_json_headers(self):
        session = FakeSession({NWS_POINTS: Script(nws_points())})

        outcome = await NwsAdapter(session, 'agent').points(US_GEO)

        url, headers = session.calls[0]
        assert url == 'https://api.weather.gov/points/39.7456,-97.0892'
        assert headers == {'Accept': 'application/geo+json', 'User-Agent': 'agent'}
        assert outcome.data.county_zone_id == 'KSC201'
        assert outcome.data.forecast_zone_id == 'KSZ009'
        assert outcome.data.radar_station == 'KTWX'

    @pytest.mark.asyncio
    async def test_points_skipped_outside_region(self):
        session = FakeSession({NWS_POINTS: Script(nws_points())})

        outcome = await NwsAdapter(session, 'agent').points(FR_GEO)

        assert outcome.status == ProviderStatus.SKIPPED
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_points_skipped_without_user_agent(self):
        session = FakeSession({NWS_POINTS: Script(nws_points())})

        outcome = await NwsAdapter(session, None).points(US_GEO)

        assert outcome.status == ProviderStatus.SKIPPED
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_points_without_properties(self):
        session = FakeSession({NWS_POINTS: Script({'title': 'Not found'})})

        outcome = await NwsAdapter(session, 'agent').points(US_GEO)

        assert outcome.result.reason == FailureReason.STRUCTURALLY_INVALID
        assert outcome.data is None

    @pytest.mark.asyncio
    async def test_forecast_uses_discovered_url(self):
        session = FakeSession({NWS_FORECAST: Script(nws_forecast(count=6))})

        outcome = await NwsAdapter(session, 'agent').forecast(location())

        assert session.calls[0][0] == NWS_FORECAST
        assert [period.name for period in outcome.data][:2] == ['This Afternoon', 'Tonight']

    @pytest.mark.asyncio
    async def test_dependent_calls_skipped_without_location(self):
        session = FakeSession()
        nws = NwsAdapter(session, 'agent')

        outcomes = [await nws.forecast(None), await nws.alerts(None), await nws.observations(None)]

        assert [outcome.status for outcome in outcomes] == [ProviderStatus.SKIPPED] * 3
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_empty_alert_feed_is_success_without_data(self):
        session = FakeSession({NWS_ALERTS: Script(nws_alerts())})

        outcome = await NwsAdapter(session, 'agent').alerts(location())

        assert session.calls[0][0] == 'https://api.weather.gov/alerts/active/zone/KSC201'
        assert outcome.request_ok is True
        assert outcome.status == ProviderStatus.NO_DATA
        assert outcome.result.value == []

    @pytest.mark.asyncio
    async def test_alerts_parsed(self):
        session = FakeSession({NWS_ALERTS: Script(nws_alerts('Heat Advisory', 'Flood Watch'))})

        outcome = await NwsAdapter(session, 'agent').alerts(location())

        assert [alert.event for alert in outcome.data] == ['Heat Advisory', 'Flood Watch']
        assert outcome.data[0].area_desc == 'Shawnee'

    @pytest.mark.asyncio
    async def test_latest_observation(self):
        session = FakeSession({NWS_OBSERVATIONS: Script(nws_observations())})

        outcome = await NwsAdapter(session, 'agent').observations(location())

        assert session.calls[0][0] == 'https://api.weather.gov/zones/forecast/KSZ009/observations?limit=1'
        assert outcome.data.station_id == 'KTOP'
        assert outcome.data.temperature.value == 31.1


class TestAirNowAdapter:
    @pytest.mark.asyncio
    async def test_current_readings(self):
        session = FakeSession({AIRNOW_CURRENT: Script(airnow_readings())})

        outcome = await AirNowAdapter(session, 'airnow-secret').current(US_GEO)

        assert session.calls[0][0] == (
            'https://www.airnowapi.org/aq/observation/latLong/current/'
            '?format=application%2Fjson&latitude=39.7456&longitude=-97.0892&distance=75&API_KEY=airnow-secret'
        )
        assert outcome.status == ProviderStatus.DATA
        assert outcome.data[0].date_observed == date(2025, 7, 1)

    @pytest.mark.asyncio
    async def test_empty_readings_is_no_data(self):
        session = FakeSession({AIRNOW_CURRENT: Script([])})

        outcome = await AirNowAdapter(session, 'airnow-secret').current(US_GEO)

        assert outcome.status == ProviderStatus.NO_DATA

    @pytest.mark.asyncio
    async def test_current_skipped_outside_region(self):
        session = FakeSession({AIRNOW_CURRENT: Script(airnow_readings())})

        outcome = await AirNowAdapter(session, 'airnow-secret').current(FR_GEO)

        assert outcome.status == ProviderStatus.SKIPPED
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_forecast_requests_the_given_date(self):
        session = FakeSession({AIRNOW_FORECAST: Script(airnow_forecast())})

        outcome = await AirNowAdapter(session, 'airnow-secret').forecast(US_GEO, date(2025, 7, 1), enabled=True)

        assert '&date=2025-07-01&' in session.calls[0][0]
        assert outcome.data[0].aqi is None
        assert outcome.data[2].action_day is True

    @pytest.mark.asyncio
    async def test_forecast_gate(self):
        session = FakeSession({AIRNOW_FORECAST: Script(airnow_forecast())})

        outcome = await AirNowAdapter(session, 'airnow-secret').forecast(US_GEO, date(2025, 7, 1), enabled=False)

        assert outcome.status == ProviderStatus.SKIPPED
        assert session.calls == []


def test_airnow_summary_takes_worst_reading():
    readings = [AirNowReading.model_validate(item) for item in airnow_readings()]
    summary = AirNowSummary.from_readings(readings)

    assert summary.overall.aqi == 61
    assert summary.overall.category == 'Moderate'
    assert summary.pm25.aqi == 38
    assert summary.pm10.aqi == 12
    assert summary.reporting_area == 'Topeka'
