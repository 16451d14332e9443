"""Free-text place search using Gemini with the Google Maps tool.

Grounded requests cannot ask for a JSON response schema, so the model is
prompted for a JSON object and the first ``{...}`` block of its text is
parsed.
"""

import json
import logging
import os
import re
from typing import Any, Optional

from ..errors import PlaceSearchError
from ..models.place import PlaceResult

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class PlaceSearchService:
    """Looks up a city or landmark and describes it for the wallpaper."""

    PROMPT = (
        'Find precise geographic information for: "{query}". '
        "Return a valid JSON object with the following fields: "
        '"name" (city name), '
        '"country" (country name), '
        '"lat" (latitude as number), '
        '"lng" (longitude as number), '
        '"description" (poetic description, max 15 words), '
        '"accentColor" (representative hex color).'
    )

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
    ):
        """
        Initialize place search.

        Args:
            api_key: Google API key (or set GOOGLE_API_KEY env var)
            model: Model to use; must support the Google Maps tool
        """
        self.api_key = api_key or os.environ.get("GOOGLE_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Google API key required. Set GOOGLE_API_KEY environment variable "
                "or pass api_key parameter."
            )

        self.model = model
        self._client = None

    @property
    def client(self):
        """Lazy initialization of GenAI client."""
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def search(self, query: str) -> PlaceResult:
        """
        Search for a place.

        Args:
            query: Free text such as "Kyoto" or "Golden Gate Bridge"

        Returns:
            PlaceResult with coordinates, label text and source links

        Raises:
            PlaceSearchError: empty query, failed request or unusable answer
        """
        from google.genai import types

        query = query.strip()
        if not query:
            raise PlaceSearchError("Search query is empty")

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=self.PROMPT.format(query=query),
                config=types.GenerateContentConfig(
                    tools=[types.Tool(google_maps=types.GoogleMaps())],
                ),
            )
        except Exception as e:
            raise PlaceSearchError(f"Place search request failed: {e}") from e

        data = self.parse_response_text(response.text or "")
        result = self.build_result(data, self.extract_source_urls(response))
        logger.info("Search %r -> %s, %s", query, result.name, result.country)
        return result

    @staticmethod
    def parse_response_text(text: str) -> dict[str, Any]:
        """Extract the JSON object from free model text."""
        match = _JSON_BLOCK.search(text)
        json_str = match.group(0) if match else text
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            logger.error("Could not parse place search answer: %s", text)
            raise PlaceSearchError("The model returned malformed data, please try again later.") from e
        if not isinstance(data, dict):
            raise PlaceSearchError("The model returned malformed data, please try again later.")
        return data

    @staticmethod
    def extract_source_urls(response) -> Optional[list[str]]:
        """Unique grounding links (maps first, then web) in order of appearance."""
        urls: list[str] = []
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return None
        metadata = getattr(candidates[0], "grounding_metadata", None)
        chunks = getattr(metadata, "grounding_chunks", None) or []
        for chunk in chunks:
            for source in (getattr(chunk, "maps", None), getattr(chunk, "web", None)):
                uri = getattr(source, "uri", None)
                if uri and uri not in urls:
                    urls.append(uri)
        return urls or None

    @staticmethod
    def build_result(data: dict[str, Any], source_urls: Optional[list[str]] = None) -> PlaceResult:
        """Map the model's loosely typed fields onto a PlaceResult."""

        def number(key: str) -> float:
            value = data.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return 0.0
            return float(value)

        return PlaceResult(
            name=str(data.get("name") or "Unknown"),
            country=str(data.get("country") or ""),
            latitude=number("lat"),
            longitude=number("lng"),
            description=str(data.get("description") or ""),
            accent_color=str(data.get("accentColor") or "#ffffff"),
            source_urls=source_urls,
        )
