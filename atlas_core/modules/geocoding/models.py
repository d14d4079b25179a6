# atlas_core/modules/geocoding/models.py
from typing import Literal, Optional

from pydantic import BaseModel

GeoSource = Literal["opencage", "nominatim", "fallback"]


class GeoComponents(BaseModel):
    street: Optional[str] = None
    neighbourhood: Optional[str] = None
    suburb: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None
    postcode: Optional[str] = None
    country: Optional[str] = None


class GeoResult(BaseModel):
    formatted: str
    lat: float
    lng: float
    components: Optional[GeoComponents] = None
    confidence: Optional[float] = None
    source: GeoSource


class MapLink(BaseModel):
    """Coordinates pulled out of a Google Maps URL, plus the place name when the URL has one."""
    lat: float
    lng: float
    text: Optional[str] = None
