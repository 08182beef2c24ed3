import pytest

from services.metrics import (
    DerivedMetrics,
    celsius_to_fahrenheit,
    derive_metrics,
    dew_point_f,
    format_number,
    heat_index,
    wind_chill,
)


class TestHeatIndex:
    def test_below_threshold_is_not_surfaced(self):
        assert heat_index(70, 50) is None

    def test_regression_branch_when_hot(self):
        value = heat_index(95, 60)
        assert value == pytest.approx(113.09, abs=0.1)

    def test_low_humidity_adjustment(self):
        # dry heat reads cooler than the raw regression
        assert heat_index(100, 10) < 100

    def test_missing_inputs(self):
        assert heat_index(None, 50) is None
        assert heat_index(95, None) is None


class TestWindChill:
    def test_cold_and_windy(self):
        assert wind_chill(30, 20) == pytest.approx(17.36, abs=0.05)

    def test_mild_air_is_not_surfaced(self):
        assert wind_chill(60, 20) is None
        # computes to about 45.9, above the reporting cut-off
        assert wind_chill(48, 5) is None
        assert wind_chill(50, 3) is None

    def test_surfaced_only_below_forty(self):
        assert wind_chill(40, 5) == pytest.approx(36.47, abs=0.05)
        assert wind_chill(30, 2) < 40

    def test_missing_inputs(self):
        assert wind_chill(None, 10) is None
        assert wind_chill(30, None) is None


class TestDewPoint:
    def test_lawrence_approximation(self):
        # 25 °C at 60 % RH is about 16.6 °C
        assert dew_point_f(25, 60) == pytest.approx(celsius_to_fahrenheit(16.6), abs=1.0)

    def test_invalid_humidity(self):
        assert dew_point_f(25, 0) is None
        assert dew_point_f(25, 120) is None
        assert dew_point_f(None, 50) is None


class TestDeriveMetrics:
    def test_hot_humid_day(self):
        metrics = derive_metrics(35.0, 60.0, 2.0)

        assert metrics.heat_index_f == pytest.approx(heat_index(95.0, 60.0))
        assert metrics.wind_chill_f is None
        assert metrics.dew_point_f is not None

    def test_wind_is_converted_from_metres_per_second(self):
        metrics = derive_metrics(-5.0, 70.0, 5.0)

        assert metrics.wind_chill_f is not None
        assert metrics.wind_chill_f == pytest.approx(wind_chill(23.0, 5.0 * 2.23694))

    def test_nothing_known(self):
        assert derive_metrics(None, None, None) == DerivedMetrics()


class TestFormatNumber:
    @pytest.mark.parametrize('value, expected', [
        (None, 'N/A'),
        (72.0, '72'),
        (72.26, '72.3'),
        (1234.5, '1,234.5'),
        (-0.04, '0'),
    ])
    def test_format(self, value, expected):
        assert format_number(value) == expected
