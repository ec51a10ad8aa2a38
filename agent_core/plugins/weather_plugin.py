"""
Weather Plugin
==============
Current conditions for a city from WeatherAPI (api.weatherapi.com).

Author: Context Agent
"""

import re
import logging
from typing import Any, Dict, Optional

import httpx

from ..models import PluginContext, PluginResult
from ..plugin_router import BasePlugin

logger = logging.getLogger(__name__)

WEATHER_KEYWORDS = re.compile(
    r"\b(weather|temperature|temp|forecast|climate|rain|snow|sunny|cloudy|wind)\b",
    re.IGNORECASE,
)
LOCATION_PATTERN = re.compile(r"\b(in|at|for)\s+([a-zA-Z\s,]+)(\?|$)", re.IGNORECASE)

LOCATION_PATTERNS = [
    re.compile(r"weather\s+(?:in|at|for)\s+([a-zA-Z\s,]+?)(?:\?|$|\.)", re.IGNORECASE),
    re.compile(r"(?:in|at|for)\s+([a-zA-Z\s,]+?)\s+weather", re.IGNORECASE),
    re.compile(r"weather\s+([a-zA-Z\s,]+?)(?:\?|$|\.)", re.IGNORECASE),
    re.compile(r"temperature\s+(?:in|at|for)\s+([a-zA-Z\s,]+?)(?:\?|$|\.)", re.IGNORECASE),
]

AIR_QUALITY_LABELS = [
    "Good",
    "Moderate",
    "Unhealthy for Sensitive",
    "Unhealthy",
    "Very Unhealthy",
    "Hazardous",
]


def extract_location(message: str) -> Optional[str]:
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(message)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def format_weather(data: Dict[str, Any]) -> str:
    """
    Render a WeatherAPI current.json payload.

    Raises:
        KeyError / TypeError: Payload is missing expected fields
    """
    location = data["location"]
    current = data["current"]
    place = f"{location['name']}, {location['region']}, {location['country']}"

    air_quality = ""
    if current.get("air_quality"):
        level = current["air_quality"].get("us-epa-index")
        label = AIR_QUALITY_LABELS[level - 1] if isinstance(level, int) and 1 <= level <= 6 else "Unknown"
        air_quality = f"\n**Air Quality:** {label} ({level}/6)"

    return (
        f"🌤️ **Weather in {place}**\n\n"
        f"**Temperature:** {round(current['temp_c'])}°C (feels like {round(current['feelslike_c'])}°C)\n"
        f"**Conditions:** {current['condition']['text']}\n"
        f"**Humidity:** {current['humidity']}%\n"
        f"**Wind Speed:** {round(current['wind_kph'])} km/h\n"
        f"**Visibility:** {current['vis_km']} km\n"
        f"**UV Index:** {current['uv']}{air_quality}\n\n"
        f"*Last updated: {current['last_updated']}*"
    )


class WeatherPlugin(BasePlugin):
    """Get current weather information for any city"""

    name = "weather"
    description = "Get current weather information for any city"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "http://api.weatherapi.com/v1",
        request_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize weather plugin

        Args:
            api_key: WeatherAPI key; without it the plugin reports unavailability
            base_url: WeatherAPI base URL
            request_timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._transport = transport

        if not self.api_key:
            logger.warning("⚠️ WEATHER_API_KEY not configured - weather plugin will report unavailability")

    def can_handle(self, message: str) -> bool:
        return bool(WEATHER_KEYWORDS.search(message) or LOCATION_PATTERN.search(message))

    async def fetch_current(self, location: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.request_timeout, transport=self._transport) as client:
            response = await client.get(
                f"{self.base_url}/current.json",
                params={"key": self.api_key, "q": location, "aqi": "yes"},
            )
            response.raise_for_status()
            return response.json()

    async def execute(self, context: PluginContext) -> PluginResult:
        location = extract_location(context.user_message)
        if not location:
            return self.error_result(
                "No location found in message",
                "Please specify a city name for weather information.",
            )

        if not self.api_key:
            return self.error_result(
                "Weather API key not configured",
                "Weather service is currently unavailable. Please try again later.",
            )

        try:
            data = await self.fetch_current(location)
            text = format_weather(data)
        except httpx.TimeoutException:
            logger.error(f"❌ Weather request timed out for '{location}' (session {context.session_id})")
            return self.error_result(
                f"Weather request timed out for {location}",
                "Sorry, I couldn't retrieve weather information at the moment.",
            )
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"❌ Weather lookup failed for '{location}' (session {context.session_id}): {e}")
            return self.error_result(
                f"Weather lookup failed for {location}",
                "Sorry, I couldn't retrieve weather information at the moment.",
            )

        logger.info(f"🌤️ Weather plugin fetched conditions for '{location}' (session {context.session_id})")
        return PluginResult(
            matched=True,
            plugin_name=self.name,
            response_text=text,
            structured_data=data,
            context_info=text,
        )
