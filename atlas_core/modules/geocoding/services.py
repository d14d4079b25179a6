# atlas_core/modules/geocoding/services.py
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from loguru import logger

from atlas_core.modules.geocoding.models import GeoResult
from atlas_core.modules.geocoding.parsing import (
    format_coordinates,
    is_short_map_link,
    parse_google_maps_url,
    parse_latlng_literal,
    pick_query,
)
from atlas_core.modules.geocoding.providers import GeocodingProviders, get_geocoding_providers


class GeocodingService:
    def __init__(self, providers: GeocodingProviders):
        self.providers = providers
        self.log = logger.bind(service="GeocodingService")

    async def forward(self, text: str) -> Optional[GeoResult]:
        return await self.providers.opencage_forward(text) or await self.providers.nominatim_forward(text)

    async def reverse(self, lat: float, lng: float) -> Optional[GeoResult]:
        return await self.providers.opencage_reverse(lat, lng) or await self.providers.nominatim_reverse(lat, lng)

    @staticmethod
    def bare(lat: float, lng: float) -> GeoResult:
        return GeoResult(formatted=format_coordinates(lat, lng), lat=lat, lng=lng, source="fallback")

    async def resolve(self, body: Any) -> GeoResult:
        """
        Resolves a map link, coordinate literal or free-text address.

        Raises 400 when the body carries no query and 404 when nothing matched.
        """
        value = pick_query(body)
        if not value:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_query")

        if is_short_map_link(value):
            expanded = await self.providers.expand_short_link(value)
            if expanded:
                self.log.debug(f"Short link expanded to {expanded}")
                value = expanded

        link = parse_google_maps_url(value)
        if link:
            found = await self.reverse(link.lat, link.lng)
            if found:
                return found
            if link.text:
                found = await self.forward(link.text)
                if found:
                    return found
            return self.bare(link.lat, link.lng)

        literal = parse_latlng_literal(value)
        if literal:
            return await self.reverse(*literal) or self.bare(*literal)

        found = await self.forward(value)
        if found:
            return found
        self.log.info(f"No geocoding results for '{value[:80]}'.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no_results")


async def get_geocoding_service(
    providers: GeocodingProviders = Depends(get_geocoding_providers),
) -> GeocodingService:
    return GeocodingService(providers)
