"""
External Data Gateway - per-turn weather and country facts

Decides which lookups a turn needs, resolves a location heuristically and runs
the lookups concurrently. A failed lookup simply leaves its key out of the
result: an absent key means "not fetched or failed", while a present key
always carries what the source returned.
"""

import asyncio
import re
from typing import Any, Dict, List, Optional
from pydantic import BaseModel

from app.core.query_classifier import QueryType
from app.tools.base_tool import BaseTool
from app.tools.weather_lookup import WeatherLookupTool, WeatherLookupInput
from app.tools.country_lookup import CountryLookupTool, CountryLookupInput
from app.core.logging_config import get_logger

logger = get_logger(__name__)

WEATHER_KEYWORDS = ("weather", "climate", "temperature")
COUNTRY_KEYWORDS = ("country", "capital", "currency", "language")

# case-sensitive; applied to the original utterance in order
LOCATION_PATTERNS = [
    re.compile(r"\b(?:in|to|visit|visiting|going to|traveling to|at)\s+([A-Z][a-zA-Z\s]+?)(?:\s|,|\.|\?|$)"),
    re.compile(r"\b([A-Z][a-zA-Z\s]+?)(?:\s+weather|\s+climate)"),
    re.compile(r"\bfor\s+([A-Z][a-zA-Z\s]+?)(?:\s+trip|\s+vacation)"),
]


class DataNeeds(BaseModel):
    """Which lookups a turn asks for"""
    weather: bool = False
    country: bool = False

    @property
    def has_any(self) -> bool:
        return self.weather or self.country


def should_fetch_data(query: str, query_type: QueryType) -> DataNeeds:
    """Decide lookups from the intent tag and a few keywords"""
    lower_query = query.lower()
    return DataNeeds(
        weather=(
            query_type in (QueryType.WEATHER, QueryType.PACKING)
            or any(word in lower_query for word in WEATHER_KEYWORDS)
        ),
        country=(
            query_type in (QueryType.DESTINATION_RECOMMENDATION, QueryType.ATTRACTIONS)
            or any(word in lower_query for word in COUNTRY_KEYWORDS)
        ),
    )


def extract_location(query: str) -> Optional[str]:
    """Pattern-match a place name such as "in Paris" or "Tokyo weather" """
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(query)
        if match and match.group(1):
            return match.group(1).strip()
    return None


class ExternalDataGateway:
    """Runs the lookups a turn needs"""

    def __init__(self, weather_tool: BaseTool, country_tool: BaseTool):
        self.weather_tool = weather_tool
        self.country_tool = country_tool

    async def fetch(self, location: str, needs: DataNeeds) -> Dict[str, Any]:
        """Fetch the requested sources for a location; never raises"""
        sources: List[str] = []
        calls = []
        if needs.weather:
            sources.append("weather")
            calls.append(self.weather_tool.execute(WeatherLookupInput(location=location)))
        if needs.country:
            sources.append("country")
            calls.append(self.country_tool.execute(CountryLookupInput(location=location)))

        if not calls:
            return {}

        outputs = await asyncio.gather(*calls)

        external_data: Dict[str, Any] = {}
        for source, output in zip(sources, outputs):
            if output.success and output.data is not None:
                external_data[source] = output.data
            else:
                logger.warning(f"{source} lookup for {location} unavailable: {output.error}")

        logger.info(f"External data for {location}: {list(external_data.keys()) or 'none'}")
        return external_data

    def get_status(self) -> Dict[str, Any]:
        return {
            "weather": self.weather_tool.get_status(),
            "country": self.country_tool.get_status(),
        }


def create_data_gateway(openweather_api_key: Optional[str] = None,
                        timeout: float = 5.0) -> ExternalDataGateway:
    return ExternalDataGateway(
        weather_tool=WeatherLookupTool(api_key=openweather_api_key, timeout=timeout),
        country_tool=CountryLookupTool(timeout=timeout),
    )
