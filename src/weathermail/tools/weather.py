"""``get_weather``: current conditions for a city from a plain-text weather service."""

import logging
import math
import re
from typing import (
    Optional,
    Tuple,
    Union,
)
from urllib.parse import quote

import httpx
from pydantic import (
    BaseModel,
    Field,
    StrictInt,
    field_validator,
)

from weathermail.config import settings
from weathermail.tools import register_tool

logger = logging.getLogger(__name__)

# e.g. "Partly cloudy +27°C"
_TEMPERATURE_RE = re.compile(r"([-+]?\d+)\s*°C", re.IGNORECASE)


class WeatherParams(BaseModel):
    """Arguments of ``get_weather``."""

    city: str = Field(..., min_length=1, description="name of the city")


class WeatherReport(BaseModel):
    """Result of ``get_weather``. ``degree_c`` is NaN when the service text had no temperature."""

    city: str = Field(..., description="name of the city")
    degree_c: Union[StrictInt, float] = Field(..., description="the degree celsius of the temp")
    condition: Optional[str] = Field(None, description="condition of the weather")

    @field_validator("degree_c")
    @classmethod
    def _integer_or_nan(cls, value: Union[int, float]) -> Union[int, float]:
        if isinstance(value, float) and not math.isnan(value):
            raise ValueError("temperature must be a whole number of degrees or NaN")
        return value


def parse_weather_text(text: str) -> Tuple[Union[int, float], Optional[str]]:
    """
    Pull a signed Celsius temperature and a condition phrase out of free text.

    Returns ``(degree_c, condition)``.  If no temperature is present, ``degree_c`` is ``nan``; the
    condition is whatever text remains once the temperature is removed, or ``None`` if nothing is
    left.
    """
    raw = text.strip()
    match = _TEMPERATURE_RE.search(raw)
    degree_c: Union[int, float] = int(match.group(1)) if match else math.nan
    condition = _TEMPERATURE_RE.sub("", raw, count=1).strip()
    return degree_c, condition or None


def _client() -> httpx.Client:
    return httpx.Client(timeout=settings.HTTP_TIMEOUT)


def fetch_weather_text(city: str) -> str:
    """GET the one-line report for *city*; HTTP errors propagate to the caller."""
    url = f"{settings.WEATHER_URL.rstrip('/')}/{quote(city.lower())}"
    with _client() as client:
        resp = client.get(url, params={"format": "%C %t"})
        resp.raise_for_status()
        return resp.text


@register_tool(
    "get_weather",
    description="returns the current weather information for the given city",
    input_model=WeatherParams,
    output_model=WeatherReport,
)
def get_weather(params: WeatherParams) -> WeatherReport:
    raw = fetch_weather_text(params.city)
    degree_c, condition = parse_weather_text(raw)
    if isinstance(degree_c, float) and math.isnan(degree_c):
        logger.warning("No temperature found in weather text for %r: %r", params.city, raw)
    return WeatherReport(city=params.city, degree_c=degree_c, condition=condition)
