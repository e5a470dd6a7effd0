"""
Country Lookup Tool - REST Countries facts

Looks a location up as a country name first and, failing that, as a capital
city, so "Paris" resolves to France.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote
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

REST_COUNTRIES_BASE_URL = "https://restcountries.com/v3.1"


class CountryLookupInput(ToolInput):
    location: str


class CountryLookupTool(BaseTool):
    """Country facts by name or capital"""

    def __init__(self, timeout: float = 5.0, base_url: str = REST_COUNTRIES_BASE_URL):
        metadata = ToolMetadata(
            name="country",
            description="Country facts from REST Countries",
            category="geography",
            tags=["country", "capital", "currency", "languages"],
            timeout=timeout,
        )
        super().__init__(metadata)
        self.base_url = base_url.rstrip("/")

    async def _execute(self, input_data: CountryLookupInput) -> ToolOutput:
        location = input_data.location
        async with aiohttp.ClientSession() as session:
            record = await self._first_match(session, "name", location)
            if record is None:
                logger.debug(f"No country named {location}, trying capital lookup")
                record = await self._first_match(session, "capital", location)

        if record is None:
            raise ExternalDataFailure(f"No country found for {location}")

        return ToolOutput(success=True, data=self._format_country(record))

    async def _first_match(self, session: aiohttp.ClientSession, kind: str,
                           value: str) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}/{kind}/{quote(value)}"
        async with session.get(url) as response:
            if response.status == 404:
                return None
            if response.status != 200:
                raise ExternalDataFailure(f"REST Countries returned HTTP {response.status}")
            payload = await response.json()
        return payload[0] if payload else None

    def _format_country(self, data: Dict[str, Any]) -> Dict[str, Any]:
        currencies = [
            f"{c.get('name')} ({c.get('symbol')})" for c in (data.get("currencies") or {}).values()
        ]
        name = data.get("name") or {}
        capitals = data.get("capital") or []
        return {
            "name": name.get("common"),
            "officialName": name.get("official"),
            "capital": capitals[0] if capitals else None,
            "region": data.get("region"),
            "subregion": data.get("subregion"),
            "population": data.get("population"),
            "languages": list((data.get("languages") or {}).values()),
            "currency": currencies[0] if currencies else None,
            "timezones": data.get("timezones") or [],
            "continents": data.get("continents") or [],
        }
