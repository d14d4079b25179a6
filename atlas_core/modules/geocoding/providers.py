# atlas_core/modules/geocoding/providers.py

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.modules.geocoding.models import GeoResult
from atlas_core.modules.geocoding.parsing import format_coordinates, normalize_components

OPENCAGE_URL = "https://api.opencagedata.com/geocode/v1/json"
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"

OPENCAGE_TIMEOUT = 10.0
NOMINATIM_TIMEOUT = 15.0
LINK_EXPANSION_TIMEOUT = 7.0


class GeocodingProviders:
    """
    Outbound calls used by the geocoding cascade.

    Every method returns None on any failure (network, timeout, non-2xx,
    undecodable body, empty result) so the cascade can move on.
    """

    def __init__(self, opencage_key: Optional[str] = None, user_agent: Optional[str] = None):
        self.opencage_key = opencage_key if opencage_key is not None else settings.OPENCAGE_API_KEY
        self.user_agent = user_agent or settings.NOMINATIM_USER_AGENT
        self.log = logger.bind(service="Geocoding")

    async def _get_json(
        self, url: str, params: Dict[str, Any], timeout: float, headers: Optional[Dict[str, str]] = None
    ) -> Optional[Any]:
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            self.log.warning(f"Request to {url} failed: {e}")
            return None
        if not response.is_success:
            self.log.warning(f"{url} answered HTTP {response.status_code}.")
            return None
        try:
            return response.json()
        except ValueError:
            self.log.warning(f"{url} returned a non-JSON body.")
            return None

    # --- Link expansion ---

    async def expand_short_link(self, link: str) -> Optional[str]:
        """Follows a short maps link and returns where it lands, or None."""
        try:
            async with httpx.AsyncClient(timeout=LINK_EXPANSION_TIMEOUT, follow_redirects=True) as client:
                response = await client.get(link)
        except httpx.HTTPError as e:
            self.log.warning(f"Short link expansion failed for {link}: {e}")
            return None
        final_url = str(response.url)
        if final_url and final_url != link:
            return final_url
        return response.headers.get("location") or None

    # --- OpenCage ---

    def _opencage_result(self, data: Any) -> Optional[GeoResult]:
        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            return None
        first = results[0]
        geometry = first.get("geometry") or {}
        try:
            return GeoResult(
                formatted=first.get("formatted") or "",
                lat=geometry["lat"],
                lng=geometry["lng"],
                components=normalize_components(first.get("components")),
                confidence=first.get("confidence"),
                source="opencage",
            )
        except (KeyError, ValueError) as e:
            self.log.warning(f"Unusable OpenCage result: {e}")
            return None

    async def opencage_forward(self, query: str) -> Optional[GeoResult]:
        if not self.opencage_key:
            return None
        params = {
            "q": query,
            "key": self.opencage_key,
            "language": "es",
            "countrycode": "bo",
            "limit": 1,
            "no_annotations": 1,
        }
        return self._opencage_result(await self._get_json(OPENCAGE_URL, params, OPENCAGE_TIMEOUT))

    async def opencage_reverse(self, lat: float, lng: float) -> Optional[GeoResult]:
        if not self.opencage_key:
            return None
        params = {
            "q": f"{lat},{lng}",
            "key": self.opencage_key,
            "language": "es",
            "limit": 1,
            "no_annotations": 1,
        }
        return self._opencage_result(await self._get_json(OPENCAGE_URL, params, OPENCAGE_TIMEOUT))

    # --- Nominatim ---

    async def nominatim_forward(self, query: str) -> Optional[GeoResult]:
        params = {"q": query, "format": "json", "limit": 1, "addressdetails": 1}
        data = await self._get_json(
            NOMINATIM_SEARCH_URL, params, NOMINATIM_TIMEOUT, headers={"User-Agent": self.user_agent}
        )
        if not isinstance(data, list) or not data:
            return None
        first = data[0]
        try:
            return GeoResult(
                formatted=first.get("display_name") or "",
                lat=float(first["lat"]),
                lng=float(first["lon"]),
                components=normalize_components(first.get("address")),
                source="nominatim",
            )
        except (KeyError, TypeError, ValueError) as e:
            self.log.warning(f"Unusable Nominatim result: {e}")
            return None

    async def nominatim_reverse(self, lat: float, lng: float) -> Optional[GeoResult]:
        params = {"lat": lat, "lon": lng, "format": "json", "zoom": 18, "addressdetails": 1}
        data = await self._get_json(
            NOMINATIM_REVERSE_URL, params, NOMINATIM_TIMEOUT, headers={"User-Agent": self.user_agent}
        )
        if not isinstance(data, dict) or not data or data.get("error"):
            return None
        return GeoResult(
            formatted=data.get("display_name") or format_coordinates(lat, lng),
            lat=lat,
            lng=lng,
            components=normalize_components(data.get("address")),
            source="nominatim",
        )


def get_geocoding_providers() -> GeocodingProviders:
    return GeocodingProviders()
