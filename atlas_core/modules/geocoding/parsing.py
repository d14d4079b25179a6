# atlas_core/modules/geocoding/parsing.py
"""Pure parsing helpers for the geocoding cascade: query extraction, map links, coordinate literals."""

import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

from atlas_core.modules.geocoding.models import GeoComponents, MapLink

QUERY_KEYS = ("query", "text", "address", "q")

_LATLNG_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")
_AT_RE = re.compile(r"@(-?\d+(?:\.\d+)?),(-?\d+(?:\.\d+)?)")
_DATA_RE = re.compile(r"!3d(-?\d+(?:\.\d+)?)!4d(-?\d+(?:\.\d+)?)")
_GOOGLE_MAPS_RE = re.compile(r"google\.[^/]*/maps")
_SHORT_LINK_RES = (
    re.compile(r"^https?://(?:maps\.app\.goo\.gl|goo\.gl/maps)", re.IGNORECASE),
    re.compile(r"^https?://maps\.google(?:\.[a-z.]+)?/maps/app", re.IGNORECASE),
)

_COMPONENT_KEYS: Dict[str, Tuple[str, ...]] = {
    "neighbourhood": ("neighbourhood", "neighborhood", "barrio"),
    "suburb": ("suburb", "quarter"),
    "district": ("district", "city_district"),
    "city": ("city", "town", "village", "municipality"),
    "state": ("state", "state_district", "region", "province"),
    "county": ("county", "departamento"),
    "postcode": ("postcode", "postal_code"),
    "country": ("country",),
}
_STREET_KEYS = ("road", "street", "pedestrian", "path", "residential", "highway")
_HOUSE_NUMBER_KEYS = ("house_number", "house_no", "number")


def pick_query(body: Any) -> str:
    """First present value among query/text/address/q, trimmed. Empty string when absent."""
    if not isinstance(body, dict):
        return ""
    for key in QUERY_KEYS:
        value = body.get(key)
        if value is not None:
            return str(value).strip()
    return ""


def is_short_map_link(value: str) -> bool:
    return any(pattern.match(value) for pattern in _SHORT_LINK_RES)


def parse_latlng_literal(value: str) -> Optional[Tuple[float, float]]:
    """`"lat,lng"` within |lat| <= 90 and |lng| <= 180; anything else is not a coordinate."""
    match = _LATLNG_RE.match(value or "")
    if not match:
        return None
    lat, lng = float(match.group(1)), float(match.group(2))
    if abs(lat) <= 90 and abs(lng) <= 180:
        return lat, lng
    return None


def _first_param(params: Dict[str, List[str]], *names: str) -> Optional[str]:
    for name in names:
        values = params.get(name)
        if values and values[0]:
            return values[0]
    return None


def _place_name(path: str, params: Dict[str, List[str]]) -> Optional[str]:
    segments = [seg for seg in path.split("/") if seg]
    if "place" in segments:
        start = segments.index("place") + 1
        for segment in segments[start:]:
            if segment.startswith("@") or segment.startswith("data="):
                continue
            text = " ".join(unquote(segment).replace("+", " ").split())
            if text:
                return text
    text = _first_param(params, "query", "destination", "q")
    return text.replace("+", " ").strip() if text else None


def parse_google_maps_url(value: str) -> Optional[MapLink]:
    """
    Extracts coordinates from a Google Maps URL.

    Tried in order: `@lat,lng` in the path, a `query=`/`q=` coordinate literal,
    then the `!3dLAT!4dLNG` data blob. Returns None for anything that is not a
    maps URL or carries no coordinates.
    """
    try:
        url = urlsplit((value or "").strip())
    except ValueError:
        return None
    if url.scheme not in ("http", "https") or not url.netloc:
        return None
    if not _GOOGLE_MAPS_RE.search(value):
        return None

    params = parse_qs(url.query)
    text = _place_name(url.path, params)

    at = _AT_RE.search(url.path)
    if at:
        return MapLink(lat=float(at.group(1)), lng=float(at.group(2)), text=text)

    query_coords = _first_param(params, "query", "q")
    literal = parse_latlng_literal(query_coords) if query_coords else None
    if literal:
        return MapLink(lat=literal[0], lng=literal[1], text=text)

    data = _DATA_RE.search(value)
    if data:
        return MapLink(lat=float(data.group(1)), lng=float(data.group(2)), text=text)
    return None


def normalize_components(raw: Optional[Dict[str, Any]]) -> Optional[GeoComponents]:
    """Maps OpenCage/Nominatim address parts onto one shape; street joins road and house number."""
    if not raw:
        return None

    def pick(keys) -> Optional[str]:
        for key in keys:
            value = raw.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    fields = {name: pick(keys) for name, keys in _COMPONENT_KEYS.items()}
    street = pick(_STREET_KEYS)
    house_number = pick(_HOUSE_NUMBER_KEYS)
    if street or house_number:
        fields["street"] = " ".join(part for part in (street, house_number) if part)
    return GeoComponents(**fields)


def format_coordinates(lat: float, lng: float) -> str:
    def _fmt(value: float) -> str:
        text = repr(float(value))
        return text[:-2] if text.endswith(".0") else text

    return f"{_fmt(lat)}, {_fmt(lng)}"
