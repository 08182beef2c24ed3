# backend/services/indicators.py
import math
from typing import List, Optional, Tuple

from services.fetching import ProviderStatus

EARTH_RADIUS_M = 6378137.0

# (colour, stop %) per local hour, midnight first
SKY_GRADIENTS: List[List[Tuple[str, int]]] = [
    [('#00000c', 0), ('#00000c', 0)],
    [('#020111', 85), ('#191621', 100)],
    [('#020111', 60), ('#20202c', 100)],
    [('#020111', 10), ('#3a3a52', 100)],
    [('#20202c', 0), ('#515175', 100)],
    [('#40405c', 0), ('#6f71aa', 80), ('#8a76ab', 100)],
    [('#4a4969', 0), ('#7072ab', 50), ('#cd82a0', 100)],
    [('#757abf', 0), ('#8583be', 60), ('#eab0d1', 100)],
    [('#82addb', 0), ('#ebb2b1', 100)],
    [('#94c5f8', 1), ('#a6e6ff', 70), ('#b1b5ea', 100)],
    [('#b7eaff', 0), ('#94dfff', 100)],
    [('#9be2fe', 0), ('#67d1fb', 100)],
    [('#90dffe', 0), ('#38a3d1', 100)],
    [('#57c1eb', 0), ('#246fa8', 100)],
    [('#2d91c2', 0), ('#1e528e', 100)],
    [('#2473ab', 0), ('#1e528e', 70), ('#5b7983', 100)],
    [('#1e528e', 0), ('#265889', 50), ('#9da671', 100)],
    [('#1e528e', 0), ('#728a7c', 50), ('#e9ce5d', 100)],
    [('#154277', 0), ('#576e71', 30), ('#e1c45e', 70), ('#b26339', 100)],
    [('#163C52', 0), ('#4F4F47', 30), ('#C5752D', 60), ('#B7490F', 80), ('#2F1107', 100)],
    [('#071B26', 0), ('#071B26', 30), ('#8A3B12', 80), ('#240E03', 100)],
    [('#010A10', 30), ('#59230B', 80), ('#2F1107', 100)],
    [('#090401', 50), ('#4B1D06', 100)],
    [('#00000c', 80), ('#150800', 100)],
]

STATUS_GLYPHS = {
    ProviderStatus.DATA: '✅',
    ProviderStatus.NO_DATA: '⚠️',
    ProviderStatus.FAILED: '❌',
    ProviderStatus.TIMED_OUT: '⌛',
    ProviderStatus.SKIPPED: '➖',
}

FORECAST_ICON_GLYPHS = [
    ('day/skc', '🌞'), ('night/skc', '🌜'),
    ('day/few', '☀️'), ('night/few', '🌙'),
    ('day/sct', '⛅'), ('night/sct', '🌙☁️'),
    ('day/bkn', '🌥️'), ('night/bkn', '🌙☁️'),
    ('day/ovc', '☁️'), ('night/ovc', '☁️'),
    ('wind', '🌬️'), ('snow', '❄️'), ('rain', '🌧️'), ('sleet', '🧊🌨️'),
    ('fzra', '🧊🌧️'), ('tsra', '⛈️'), ('tornado', '🌪️'), ('hurricane', '🌀'),
    ('tropical', '🌀'), ('dust', '🌫️💨'), ('smoke', '🔥🌫️'), ('haze', '😶‍🌫️'),
    ('hot', '🥵'), ('cold', '🥶'), ('blizzard', '🌬️❄️'), ('fog', '🌫️'),
]

ALERT_SEVERITY_GLYPHS = [
    ('MINOR', '🟡'), ('MODERATE', '🟠'), ('SEVERE', '🔴'), ('EXTREME', '🚨🔴'),
]

ALERT_RESPONSE_GLYPHS = [
    ('ALLCLEAR', '👌'), ('ASSESS', '📋'), ('MONITOR', '🌐📺📻'), ('AVOID', '⛔'),
    ('EXECUTE', '➡️'), ('PREPARE', '🔦🥫🚰⚡🔋🎒'), ('EVACUATE', '🚨🚗🛣️'),
    ('SHELTER', '🚨🏠'),
]

ALERT_EVENT_GLYPHS = [
    ('DUST', '🌫️💨'), ('SMOKE', '🔥🌫️'), ('FIRE', '🔥'), ('AIR QUALITY', '🌫️😷'),
    ('FREEZE', '🥶'), ('FREEZING', '🥶'), ('FROST', '❄️🥶'), ('WINTER', '❄️🧊🌨️'),
    ('BLIZZARD', '🌬️❄️'), ('ICE', '🧊🌧️'), ('SNOW', '❄️'), ('COLD', '🥶'),
    ('FOG', '🌫️'), ('THUNDERSTORM', '⛈️'), ('TORNADO', '🌪️'), ('WIND', '🌬️'),
    ('GALE', '🌬️'), ('FLOOD', '🌊'), ('SQUALL', '🌬️🌊'), ('STORM SURGE', '🌊🚨'),
    ('HEAT', '🥵'), ('TROPICAL', '🌀'), ('HURRICANE', '🌀'), ('TYPHOON', '🌀'),
    ('TSUNAMI', '🌊🚨'), ('ADVISORY', '⚠️'), ('WATCH', '👀'), ('WARNING', '🚨'),
    ('EVACUATION', '🚨🚗🛣️'),
]

USER_AGENT_GLYPHS = [
    ('windows', '💻🪟'), ('macintosh', '💻🍏'), ('linux', '💻🐧'),
    ('android', '📱🤖'), ('iphone', '📱🍏'), ('ipad', '📱🍏'),
]


def lat2y(lat: float) -> float:
    return math.log(math.tan(math.pi / 4 + math.radians(lat) / 2)) * EARTH_RADIUS_M


def lon2x(lon: float) -> float:
    return math.radians(lon) * EARTH_RADIUS_M


def to_css_gradient(hour: int) -> str:
    stops = ', '.join(f"{color} {position}%" for color, position in SKY_GRADIENTS[hour % 24])
    return f"linear-gradient(to bottom, {stops})"


def daylight_palette(hour: int) -> Tuple[str, str]:
    """Accent and text colour that stay readable over the hour's gradient."""
    if 7 <= hour < 13:
        return 'black', 'black'
    return '#f6821f', 'white'


def status_glyph(status: ProviderStatus) -> str:
    return STATUS_GLYPHS[status]


def aqi_to_emoji(aqi: Optional[float]) -> str:
    if aqi is None:
        return ''
    if aqi <= 50:
        return '🟢'
    if aqi <= 100:
        return '🟡'
    if aqi <= 150:
        return '🟠'
    if aqi <= 200:
        return '🔴'
    if aqi <= 300:
        return '🟣'
    return '⚫'


def aqi_category_to_emoji(category: Optional[int]) -> str:
    if category is None:
        return ''
    return {1: '🟢', 2: '🟡', 3: '🟠', 4: '🔴', 5: '🟣'}.get(category, '⚫')


def dew_point_emoji(dew_point: Optional[float]) -> str:
    if dew_point is None:
        return ''
    if dew_point < 30:
        return '🟠'  # dry
    if dew_point < 55:
        return '🟢'
    if dew_point < 65:
        return '🟡'
    if dew_point < 70:
        return '🟠'
    return '🔴'  # oppressive


def _collect(text: Optional[str], table: List[Tuple[str, str]], first_only: bool = False) -> str:
    if not text:
        return ''
    glyphs = ''
    for needle, glyph in table:
        if needle in text:
            if first_only:
                return glyph
            glyphs += glyph
    return glyphs


def forecast_icon_to_emoji(icon_url: Optional[str]) -> str:
    return _collect(icon_url.lower() if icon_url else None, FORECAST_ICON_GLYPHS)


def alert_severity_to_emoji(severity: Optional[str]) -> str:
    return _collect(severity.upper() if severity else None, ALERT_SEVERITY_GLYPHS, first_only=True)


def alert_response_to_emoji(response: Optional[str]) -> str:
    return _collect(response.upper() if response else None, ALERT_RESPONSE_GLYPHS, first_only=True)


def alert_event_to_emoji(event: Optional[str]) -> str:
    return _collect(event.upper() if event else None, ALERT_EVENT_GLYPHS)


def user_agent_icon(user_agent: Optional[str]) -> str:
    return _collect(user_agent.lower() if user_agent else None, USER_AGENT_GLYPHS)
