"""
Geocoder - free-text location to coordinates.

Lookup order:
  1. Cache (key = lower-cased, trimmed location text)
  2. Built-in gazetteer of Iranian cities and Tehran neighborhoods,
     English and Farsi names. Exact match first, then containment.
  3. OpenStreetMap Nominatim search ("{location}, {country}")

Nominatim usage policy allows ~1 request/second and requires a
User-Agent; requests are serialized and spaced by min_interval seconds.
A miss returns None and is not retried within the same call.
"""

import asyncio
import logging
import time
from typing import Dict, Iterable, List, Optional, Tuple

import httpx

from riseup.schemas import GeoPoint

logger = logging.getLogger(__name__)

# name -> (lat, lon, address)
CITY_COORDINATES: Dict[str, Tuple[float, float, str]] = {
    # Major cities (Farsi)
    "تهران": (35.6892, 51.389, "Tehran, Iran"),
    "مشهد": (36.2974, 59.6059, "Mashhad, Iran"),
    "اصفهان": (32.6546, 51.668, "Isfahan, Iran"),
    "شیراز": (29.5918, 52.5836, "Shiraz, Iran"),
    "تبریز": (38.08, 46.2919, "Tabriz, Iran"),
    "کرج": (35.8327, 50.9916, "Karaj, Iran"),
    "قم": (34.6416, 50.8746, "Qom, Iran"),
    "اهواز": (31.3183, 48.6706, "Ahvaz, Iran"),
    "کرمانشاه": (34.3142, 47.065, "Kermanshah, Iran"),
    "رشت": (37.2808, 49.5832, "Rasht, Iran"),
    "اراک": (34.0917, 49.6892, "Arak, Iran"),
    "همدان": (34.7992, 48.5146, "Hamedan, Iran"),
    "یزد": (31.8974, 54.3569, "Yazd, Iran"),
    "اردبیل": (38.2498, 48.2933, "Ardabil, Iran"),
    "بندرعباس": (27.1865, 56.2808, "Bandar Abbas, Iran"),
    "کرمان": (30.2832, 57.0788, "Kerman, Iran"),
    "قزوین": (36.2797, 50.0049, "Qazvin, Iran"),
    "زنجان": (36.6736, 48.4787, "Zanjan, Iran"),
    "سنندج": (35.3146, 46.9978, "Sanandaj, Iran"),
    "خرم‌آباد": (33.4877, 48.3569, "Khorramabad, Iran"),
    "گرگان": (36.8439, 54.4436, "Gorgan, Iran"),
    "ساری": (36.5633, 53.0601, "Sari, Iran"),
    "بابل": (36.5511, 52.6786, "Babol, Iran"),
    "قشم": (26.9688, 56.0754, "Qeshm Island, Iran"),
    "فسا": (28.9387, 53.6481, "Fasa, Iran"),
    "کوهدشت": (33.5335, 47.6079, "Kuhdasht, Iran"),
    "رامهرمز": (31.28, 49.6084, "Ramhormoz, Iran"),
    "فولادشهر": (32.4822, 51.4043, "Fuladshahr, Iran"),
    "ازنا": (33.4607, 49.4516, "Azna, Iran"),
    "لردگان": (31.51, 50.83, "Lordegan, Iran"),
    "کوار": (29.205, 52.691, "Kavar, Iran"),
    "اسدآباد": (34.7824, 48.1201, "Asadabad, Iran"),
    "مرودشت": (29.8741, 52.8002, "Marvdasht, Iran"),
    "کازرون": (29.6194, 51.6543, "Kazerun, Iran"),
    "ایلام": (33.6368, 46.4218, "Ilam, Iran"),
    "شازند": (33.9318, 49.4031, "Shazand, Iran"),
    "یاسوج": (30.6682, 51.588, "Yasuj, Iran"),
    "ملکشاهی": (33.3924, 46.5987, "Malekshahi, Iran"),

    # Major cities (English)
    "Tehran": (35.6892, 51.389, "Tehran, Iran"),
    "Mashhad": (36.2974, 59.6059, "Mashhad, Iran"),
    "Isfahan": (32.6546, 51.668, "Isfahan, Iran"),
    "Shiraz": (29.5918, 52.5836, "Shiraz, Iran"),
    "Tabriz": (38.08, 46.2919, "Tabriz, Iran"),
    "Karaj": (35.8327, 50.9916, "Karaj, Iran"),
    "Qom": (34.6416, 50.8746, "Qom, Iran"),
    "Ahvaz": (31.3183, 48.6706, "Ahvaz, Iran"),
    "Kermanshah": (34.3142, 47.065, "Kermanshah, Iran"),
    "Rasht": (37.2808, 49.5832, "Rasht, Iran"),
    "Arak": (34.0917, 49.6892, "Arak, Iran"),
    "Hamedan": (34.7992, 48.5146, "Hamedan, Iran"),
    "Yazd": (31.8974, 54.3569, "Yazd, Iran"),
    "Ardabil": (38.2498, 48.2933, "Ardabil, Iran"),
    "Bandar Abbas": (27.1865, 56.2808, "Bandar Abbas, Iran"),
    "Kerman": (30.2832, 57.0788, "Kerman, Iran"),
    "Qazvin": (36.2797, 50.0049, "Qazvin, Iran"),
    "Zanjan": (36.6736, 48.4787, "Zanjan, Iran"),
    "Sanandaj": (35.3146, 46.9978, "Sanandaj, Iran"),
    "Khorramabad": (33.4877, 48.3569, "Khorramabad, Iran"),
    "Gorgan": (36.8439, 54.4436, "Gorgan, Iran"),
    "Sari": (36.5633, 53.0601, "Sari, Iran"),
    "Babol": (36.5511, 52.6786, "Babol, Iran"),
    "Qeshm": (26.9688, 56.0754, "Qeshm Island, Iran"),
    "Fasa": (28.9387, 53.6481, "Fasa, Iran"),
    "Kuhdasht": (33.5335, 47.6079, "Kuhdasht, Iran"),
    "Ramhormoz": (31.28, 49.6084, "Ramhormoz, Iran"),
    "Fuladshahr": (32.4822, 51.4043, "Fuladshahr, Iran"),
    "Azna": (33.4607, 49.4516, "Azna, Iran"),
    "Lordegan": (31.51, 50.83, "Lordegan, Iran"),
    "Kavar": (29.205, 52.691, "Kavar, Iran"),
    "Asadabad": (34.7824, 48.1201, "Asadabad, Iran"),
    "Marvdasht": (29.8741, 52.8002, "Marvdasht, Iran"),
    "Kazerun": (29.6194, 51.6543, "Kazerun, Iran"),
    "Ilam": (33.6368, 46.4218, "Ilam, Iran"),
    "Shazand": (33.9318, 49.4031, "Shazand, Iran"),
    "Yasuj": (30.6682, 51.588, "Yasuj, Iran"),
    "Malekshahi": (33.3924, 46.5987, "Malekshahi, Iran"),

    # Tehran neighborhoods
    "ونک": (35.7589, 51.4084, "Vanak, Tehran, Iran"),
    "ولنجک": (35.8073, 51.4025, "Velenjak, Tehran, Iran"),
    "نیاوران": (35.8156, 51.4699, "Niavaran, Tehran, Iran"),
    "تهرانپارس": (35.7424, 51.534, "Tehranpars, Tehran, Iran"),
    "نارمک": (35.7283, 51.4931, "Narmak, Tehran, Iran"),
    "نازی‌آباد": (35.6379, 51.4050, "Nazi Abad, Tehran, Iran"),
    "Vanak": (35.7589, 51.4084, "Vanak, Tehran, Iran"),
    "Velenjak": (35.8073, 51.4025, "Velenjak, Tehran, Iran"),
    "Niavaran": (35.8156, 51.4699, "Niavaran, Tehran, Iran"),
    "Tehranpars": (35.7424, 51.534, "Tehranpars, Tehran, Iran"),
    "Narmak": (35.7283, 51.4931, "Narmak, Tehran, Iran"),
    "Nazi Abad": (35.6379, 51.4050, "Nazi Abad, Tehran, Iran"),
}

KNOWN_LOCATIONS: List[str] = list(CITY_COORDINATES)


def normalize_location(location: str) -> str:
    return (location or "").lower().strip()


def lookup_gazetteer(location: str) -> Optional[GeoPoint]:
    """Exact name match, then either-way containment."""
    normalized = normalize_location(location)
    if not normalized:
        return None
    for name, (lat, lon, address) in CITY_COORDINATES.items():
        if normalize_location(name) == normalized:
            return GeoPoint(lat=lat, lon=lon, address=address)
    for name, (lat, lon, address) in CITY_COORDINATES.items():
        key = normalize_location(name)
        if key in normalized or normalized in key:
            return GeoPoint(lat=lat, lon=lon, address=address)
    return None


class Geocoder:
    """Cached, throttled location resolver."""

    def __init__(
        self,
        nominatim_url: str = "https://nominatim.openstreetmap.org/search",
        user_agent: str = "RiseUpNewsPipeline/1.0",
        country: str = "Iran",
        min_interval: float = 1.1,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.nominatim_url = nominatim_url
        self.user_agent = user_agent
        self.country = country
        self.min_interval = min_interval
        self.timeout = timeout
        self._transport = transport
        self._cache: Dict[str, GeoPoint] = {}
        self._lock = asyncio.Lock()
        self._last_request = 0.0

    async def resolve(self, location: str) -> Optional[GeoPoint]:
        normalized = normalize_location(location)
        if not normalized:
            return None
        if normalized in self._cache:
            return self._cache[normalized]

        point = lookup_gazetteer(location)
        if point is None:
            point = await self._query_nominatim(location)
        if point is not None:
            self._cache[normalized] = point
        return point

    async def resolve_many(self, locations: Iterable[str]) -> Dict[str, GeoPoint]:
        """Resolve unique locations one at a time. Misses are left out."""
        resolved: Dict[str, GeoPoint] = {}
        for location in dict.fromkeys(locations):
            point = await self.resolve(location)
            if point is not None:
                resolved[location] = point
        return resolved

    async def _throttle(self):
        wait = self.min_interval - (time.monotonic() - self._last_request)
        if wait > 0:
            await asyncio.sleep(wait)
        self._last_request = time.monotonic()

    async def _query_nominatim(self, location: str) -> Optional[GeoPoint]:
        params = {
            "q": f"{location}, {self.country}",
            "format": "json",
            "limit": 1,
            "addressdetails": 1,
        }
        async with self._lock:
            await self._throttle()
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    response = await client.get(
                        self.nominatim_url, params=params, headers={"User-Agent": self.user_agent}
                    )
                    response.raise_for_status()
                    results = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Geocoding error for {location!r}: {e}")
                return None

        if not results:
            logger.debug(f"No geocoding results for {location!r}")
            return None

        top = results[0]
        address = top.get("address") or {}
        try:
            return GeoPoint(
                lat=float(top["lat"]),
                lon=float(top["lon"]),
                address=address.get("city") or address.get("town") or location,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed geocoding result for {location!r}: {e}")
            return None

    def stats(self) -> Dict[str, int]:
        return {"cache_size": len(self._cache), "gazetteer_size": len(CITY_COORDINATES)}
