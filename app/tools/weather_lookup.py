"""
Weather Lookup Tool - OpenWeatherMap current conditions and short forecast
"""

from typing import Any, Dict, List, Optional
import aiohttp
from app.tools.base_tool import (
    BaseTool,
    ToolInput,
    ToolOutput,
    ToolMetadata,
    ExternalDataFailure,
)
from app.core.logging_config import get_logger

logger = get_logger(__name__)

OPENWEATHER_BASE_URL = "https://api.openweathermap.org/data/2.5"
FORECAST_STEPS = 8  # 8 x 3h = next 24 hours


class WeatherLookupInput(ToolInput):
    location: str
    include_forecast: bool = True


class WeatherLookupTool(BaseTool):
    """Current weather, plus a 24h forecast when available"""

    def __init__(self, api_key: Optional[str] = None, timeout: float = 5.0,
                 base_url: str = OPENWEATHER_BASE_URL):
        metadata = ToolMetadata(
            name="weather",
            description="Current weather and 24h forecast from OpenWeatherMap",
            category="weather",
            tags=["weather", "forecast", "openweathermap"],
            requires_auth=True,
            timeout=timeout,
        )
        super().__init__(metadata)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def _execute(self, input_data: WeatherLookupInput) -> ToolOutput:
        if not self.api_key:
            raise ExternalDataFailure("Weather API key not configured")

        params = {"q": input_data.location, "appid": self.api_key, "units": "metric"}

        async with aiohttp.ClientSession() as session:
            current = await self._get_json(session, "weather", params)
            weather = self._format_current(current)

            if input_data.include_forecast:
                try:
                    forecast = await self._get_json(
                        session, "forecast", {**params, "cnt": FORECAST_STEPS}
                    )
                    weather["forecast"] = self._format_forecast(forecast)
                except (aiohttp.ClientError, ExternalDataFailure, KeyError, IndexError, TypeError) as e:
                    # current conditions are still worth returning, even next to a malformed forecast
                    logger.warning(f"Weather forecast lookup failed for {input_data.location}: {e}")

        return ToolOutput(success=True, data=weather)

    async def _get_json(self, session: aiohttp.ClientSession, endpoint: str,
                        params: Dict[str, Any]) -> Dict[str, Any]:
        async with session.get(f"{self.base_url}/{endpoint}", params=params) as response:
            if response.status != 200:
                raise ExternalDataFailure(
                    f"OpenWeatherMap {endpoint} returned HTTP {response.status}"
                )
            return await response.json()

    def _format_current(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            main = data["main"]
            condition = data["weather"][0]
        except (KeyError, IndexError) as e:
            raise ExternalDataFailure(f"Unexpected weather payload: missing {e}") from e

        return {
            "temperature": round(main["temp"]),
            "feelsLike": round(main.get("feels_like", main["temp"])),
            "condition": condition.get("description"),
            "humidity": main.get("humidity"),
            "windSpeed": (data.get("wind") or {}).get("speed"),
            "location": data.get("name"),
            "country": (data.get("sys") or {}).get("country"),
        }

    def _format_forecast(self, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            {
                "time": item.get("dt_txt"),
                "temperature": round(item["main"]["temp"]),
                "condition": item["weather"][0].get("description"),
                "precipitationChance": round(item.get("pop", 0) * 100),
            }
            for item in data.get("list", [])
        ]
