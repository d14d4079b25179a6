# atlas_core/modules/geocoding/routers.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from atlas_core.core.security import get_current_session
from .services import GeocodingService, get_geocoding_service

router = APIRouter(dependencies=[Depends(get_current_session)])


@router.post("", tags=["Geocoding"])
async def geocode(
    payload: Optional[Dict[str, Any]] = Body(None),
    geocoding_service: GeocodingService = Depends(get_geocoding_service),
):
    """Accepts `query` (or `text`, `address`, `q`): a maps link, "lat,lng", or an address."""
    result = await geocoding_service.resolve(payload or {})
    return {"ok": True, **result.model_dump(exclude_none=True)}
