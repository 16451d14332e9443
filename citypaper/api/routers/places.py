"""Place name and search endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query

from ...config import get_config
from ...errors import InvalidCoordinate, PlaceSearchError
from ...models.location import Location
from ...models.params import WallpaperParams
from ...models.place import AdminGranularity
from ...services.search_service import PlaceSearchService
from ..schemas import PlaceNameResponse, SearchRequest, SearchResponse
from .wallpapers import get_resolver

logger = logging.getLogger(__name__)

router = APIRouter()


def get_search_service() -> PlaceSearchService:
    config = get_config()
    return PlaceSearchService(api_key=config.google_api_key, model=config.gemini_model)


@router.get("/name", response_model=PlaceNameResponse)
async def resolve_place_name(
    lat: float = Query(..., description="Latitude"),
    lng: float = Query(..., description="Longitude"),
    granularity: AdminGranularity = Query(default=AdminGranularity.CITY),
):
    """Reverse geocode a point. Lookup failures return the fallback name."""
    try:
        location = Location.parse(lat, lng)
    except InvalidCoordinate as e:
        raise HTTPException(status_code=422, detail=str(e))

    resolver = get_resolver()
    try:
        name = await resolver.resolve(location, granularity)
    finally:
        await resolver.aclose()

    return PlaceNameResponse(name=name, latitude=lat, longitude=lng, granularity=granularity)


@router.post("/search", response_model=SearchResponse)
async def search_place(request: SearchRequest):
    """Find a place by free text with Gemini and Google Maps grounding."""
    try:
        service = get_search_service()
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))

    try:
        result = await service.search(request.query)
    except PlaceSearchError as e:
        raise HTTPException(status_code=502, detail=str(e))

    params = WallpaperParams(
        lat=result.latitude,
        lng=result.longitude,
        name=result.name,
        accent=result.to_label().accent_color,
    )
    return SearchResponse(**result.model_dump(), params=params.to_query_string())
