"""Administrative place names from reverse geocoding.

Nominatim-style address objects are inconsistent across regions: a Chinese
district may sit in the ``city`` slot while the actual city is in
``state_district``, and municipalities show up as ``state``. The rules in
``pick_admin_name`` sort that out for each granularity.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx

from ..errors import GeocodeFailed
from ..models.location import Location
from ..models.place import FALLBACK_NAME, RESOLVING_NAME, AdminGranularity

logger = logging.getLogger(__name__)

DEFAULT_GEOCODER_URL = "https://nominatim.openstreetmap.org/reverse"

STREET_SUFFIXES = ("街道", "Subdistrict", "Street")
DISTRICT_SUFFIXES = ("区", "县", "旗", "District", "County")
CITY_SUFFIXES = ("市", "州", "盟", "地区", "City", "Prefecture", "League")
PROVINCE_SUFFIXES = ("省", "Province")

# Directly administered municipalities, with and without the 市 suffix
MUNICIPALITIES = frozenset(
    {
        "北京", "北京市", "上海", "上海市", "天津", "天津市", "重庆", "重庆市",
        "beijing", "shanghai", "tianjin", "chongqing",
    }
)

# Sub-city fields for district granularity, in priority order
_SUB_CITY_FIELDS = ("district", "county", "suburb", "town")


def _field(address: dict, key: str) -> str:
    """Stripped string value of ``key``; anything absent or non-string is ``""``."""
    value = address.get(key)
    if not isinstance(value, str):
        return ""
    return value.strip()


def _has_suffix(name: str, suffixes: tuple[str, ...]) -> bool:
    lowered = name.lower()
    return any(lowered.endswith(s.lower()) for s in suffixes)


def _is_municipality(name: str) -> bool:
    if not name:
        return False
    lowered = name.lower()
    for suffix in (" city", " shi", " municipality"):
        if lowered.endswith(suffix):
            lowered = lowered[: -len(suffix)]
    return lowered in MUNICIPALITIES


def _pick_province(address: dict) -> str:
    return _field(address, "state") or FALLBACK_NAME


def _pick_district(address: dict) -> str:
    city = _field(address, "city")
    if city and _has_suffix(city, DISTRICT_SUFFIXES):
        return city
    for key in _SUB_CITY_FIELDS:
        candidate = _field(address, key)
        if candidate and not _has_suffix(candidate, STREET_SUFFIXES):
            return candidate
    return FALLBACK_NAME


def _pick_city(address: dict) -> str:
    city = _field(address, "city")
    state_district = _field(address, "state_district")
    state = _field(address, "state")

    if _is_municipality(city):
        return city
    if state_district and _has_suffix(state_district, CITY_SUFFIXES):
        return state_district
    if city and not _has_suffix(city, DISTRICT_SUFFIXES + PROVINCE_SUFFIXES):
        return city
    if state_district:
        return state_district
    if city:
        return city
    if _is_municipality(state):
        return state
    return _field(address, "town") or _field(address, "municipality") or FALLBACK_NAME


def pick_admin_name(address: Optional[dict], granularity: AdminGranularity = AdminGranularity.CITY) -> str:
    """Choose one display name from a reverse-geocoding address object.

    Args:
        address: Loosely typed ``address`` object; any subset of fields may
            be missing, blank or of the wrong type
        granularity: Administrative level wanted

    Returns:
        A non-empty name; ``FALLBACK_NAME`` when nothing usable is present.
    """
    if not isinstance(address, dict):
        return FALLBACK_NAME
    granularity = AdminGranularity(granularity)
    if granularity == AdminGranularity.PROVINCE:
        return _pick_province(address)
    if granularity == AdminGranularity.DISTRICT:
        return _pick_district(address)
    return _pick_city(address)


class AdminNameResolver:
    """Reverse geocodes a location into an administrative name."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = DEFAULT_GEOCODER_URL,
        locale: str = "zh-CN",
        detail_level: int = 10,
        user_agent: str = "citypaper",
        timeout: float = 10.0,
    ):
        """
        Args:
            client: Pre-configured async client (tests pass a MockTransport one)
            base_url: Nominatim-compatible ``/reverse`` endpoint
            locale: ``accept-language`` hint
            detail_level: Reverse lookup ``zoom`` (10 is city level)
            user_agent: Required by the public Nominatim usage policy
            timeout: Request timeout in seconds
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )
        self.base_url = base_url
        self.locale = locale
        self.detail_level = detail_level

    async def lookup(self, location: Location) -> dict[str, Any]:
        """Fetch the raw ``address`` object for a location.

        Raises:
            GeocodeFailed: transport error, non-2xx status or unusable payload
        """
        params = {
            "format": "json",
            "lat": f"{location.latitude:.6f}",
            "lon": f"{location.longitude:.6f}",
            "zoom": self.detail_level,
            "addressdetails": 1,
            "accept-language": self.locale,
        }
        try:
            response = await self._client.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise GeocodeFailed(f"Reverse geocoding request failed: {e}") from e
        except ValueError as e:
            raise GeocodeFailed(f"Reverse geocoding returned invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise GeocodeFailed(f"Unexpected reverse geocoding payload: {type(payload).__name__}")
        address = payload.get("address")
        if not isinstance(address, dict):
            raise GeocodeFailed(payload.get("error") or "No address in reverse geocoding result")
        return address

    async def resolve(
        self,
        location: Location,
        granularity: AdminGranularity = AdminGranularity.CITY,
    ) -> str:
        """Display name for a location. Never raises; failures give ``FALLBACK_NAME``."""
        granularity = AdminGranularity(granularity)
        try:
            address = await self.lookup(location)
        except GeocodeFailed as e:
            logger.warning("Name lookup for %s failed: %s", location.format_coordinates(), e)
            return FALLBACK_NAME
        name = pick_admin_name(address, granularity)
        logger.debug("Resolved %s (%s) to %s", location.format_coordinates(), granularity.value, name)
        return name

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class NameSlot:
    """A display name guarded by a request sequence.

    Each request or explicit edit claims a new token; a name is applied
    only with the latest token. ``RenderSurface`` offers the same
    interface for its label.
    """

    def __init__(self, on_name: Optional[Callable[[str], None]] = None, name: str = FALLBACK_NAME):
        self.name = name
        self._on_name = on_name
        self._token = 0

    @property
    def label_token(self) -> int:
        return self._token

    def claim_label(self) -> int:
        self._token += 1
        return self._token

    def apply_name(self, name: str, token: int) -> bool:
        if token != self._token:
            return False
        self.name = name
        if self._on_name is not None:
            self._on_name(name)
        return True


class PlaceNameTracker:
    """Applies resolved names so that only the most recent request wins.

    Tokens come from the target (a ``NameSlot`` or a ``RenderSurface``), so
    trackers sharing a target also share one sequence, and an explicit
    label set on the target makes any resolution still in flight stale.
    """

    def __init__(
        self,
        resolver: AdminNameResolver,
        on_name: Optional[Callable[[str], None]] = None,
        target=None,
    ):
        self.resolver = resolver
        self.target = target if target is not None else NameSlot(on_name)
        self.display_name = FALLBACK_NAME

    @classmethod
    def for_surface(cls, resolver: AdminNameResolver, surface) -> "PlaceNameTracker":
        """Tracker writing names into a RenderSurface's label."""
        return cls(resolver, target=surface)

    @property
    def token(self) -> int:
        return self.target.label_token

    def _apply(self, name: str, token: int) -> bool:
        if not self.target.apply_name(name, token):
            return False
        self.display_name = name
        return True

    async def refresh(
        self,
        location: Location,
        granularity: AdminGranularity = AdminGranularity.CITY,
    ) -> Optional[str]:
        """Resolve a name for ``location``.

        Returns:
            The applied name, or None if a newer request or edit superseded this one.
        """
        token = self.target.claim_label()
        self._apply(RESOLVING_NAME, token)
        name = await self.resolver.resolve(location, granularity)
        if not self._apply(name, token):
            logger.debug("Dropping stale name %r (request %d, latest %d)", name, token, self.token)
            return None
        return name

    def set_display_name(self, name: str) -> None:
        """Explicit edit; also invalidates any resolution still in flight."""
        self._apply(name, self.target.claim_label())

    def schedule(
        self,
        location: Location,
        granularity: AdminGranularity = AdminGranularity.CITY,
    ) -> asyncio.Task:
        """Start ``refresh`` in the background."""
        return asyncio.get_running_loop().create_task(self.refresh(location, granularity))
