# chikamap/services/google.py
# -----------------------------------------------------------------------------
# Google Maps Platform 프록시 (API 키를 서버에만 보관)
# - Geocoding / Places(Text Search) / Street View (메타데이터, 이미지)
# - 응답은 가공 없이 전달
# -----------------------------------------------------------------------------
import httpx
from loguru import logger

from chikamap.core.config import settings

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
PLACES_URL = "https://places.googleapis.com/v1/places:searchText"
STREETVIEW_URL = "https://maps.googleapis.com/maps/api/streetview"
STREETVIEW_METADATA_URL = "https://maps.googleapis.com/maps/api/streetview/metadata"

PLACES_FIELD_MASK = (
    "places.id,places.displayName,places.formattedAddress,places.location,places.types"
)

_TIMEOUT = httpx.Timeout(connect=6.0, read=10.0, write=10.0, pool=6.0)


def _api_key() -> str:
    key = settings.GOOGLE_API_KEY
    if not key:
        raise RuntimeError("GOOGLE_API_KEY가 설정되어 있지 않습니다.")
    return key


async def geocode(address: str, transport: httpx.AsyncBaseTransport | None = None) -> dict:
    params = {"address": address, "key": _api_key(), "language": "ja", "region": "jp"}
    async with httpx.AsyncClient(timeout=_TIMEOUT, transport=transport) as client:
        r = await client.get(GEOCODE_URL, params=params)
        return r.json()


async def search_places(
    query: str, transport: httpx.AsyncBaseTransport | None = None
) -> tuple[int, dict]:
    """(status_code, body). Places API 의 error 응답은 상태코드 그대로 전달."""
    headers = {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": _api_key(),
        "X-Goog-FieldMask": PLACES_FIELD_MASK,
    }
    body = {
        "textQuery": query,
        "languageCode": "ja",
        "regionCode": "JP",
        "maxResultCount": 5,
    }
    async with httpx.AsyncClient(timeout=_TIMEOUT, transport=transport) as client:
        r = await client.post(PLACES_URL, json=body, headers=headers)
        data = r.json()
    if isinstance(data, dict) and data.get("error"):
        logger.error(f"[Places] API error: {data['error']}")
        return r.status_code, data
    return 200, data


async def streetview_metadata(
    lat: float, lon: float, transport: httpx.AsyncBaseTransport | None = None
) -> dict:
    params = {"location": f"{lat},{lon}", "key": _api_key()}
    async with httpx.AsyncClient(timeout=_TIMEOUT, transport=transport) as client:
        r = await client.get(STREETVIEW_METADATA_URL, params=params)
        return r.json()


async def streetview_image(
    lat: float,
    lon: float,
    *,
    size: str = "600x400",
    heading: int = 0,
    pitch: int = 0,
    fov: int = 90,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[bytes, str]:
    params = {
        "size": size,
        "location": f"{lat},{lon}",
        "heading": str(heading),
        "pitch": str(pitch),
        "fov": str(fov),
        "key": _api_key(),
    }
    async with httpx.AsyncClient(timeout=_TIMEOUT, transport=transport) as client:
        r = await client.get(STREETVIEW_URL, params=params)
        r.raise_for_status()
        return r.content, r.headers.get("content-type", "image/jpeg")
