import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

FUEL_TYPES = ("E5", "E10", "Diesel", "Super Diesel", "B10", "HVO")

FUEL_TYPE_ALIASES = {
    "B7_STANDARD": "Diesel",
    "B7P": "Diesel",
    "Diesel (B7)": "Diesel",
    "B7_PREMIUM": "Super Diesel",
    "B7S": "Super Diesel",
    "Super Diesel (B7)": "Super Diesel",
    "E5_PREMIUM": "E5",
}

UNKNOWN_POSTCODE = "UNKNOWN"

# Field precedence: first non-empty key wins.
STATION_ID_KEYS = ("node_id", "station_id", "id", "site_id")
STATION_NAME_KEYS = ("trading_name", "station_name", "name", "site_name")
BRAND_KEYS = ("brand_name", "brand", "station_brand", "site_brand")
LINE1_KEYS = ("address_line_1", "line1")
LINE2_KEYS = ("address_line_2", "line2")
CITY_KEYS = ("city", "town")
COUNTY_KEYS = ("county",)
POSTCODE_KEYS = ("postcode", "post_code")
LATITUDE_KEYS = ("latitude", "lat")
LONGITUDE_KEYS = ("longitude", "lng", "lon")

PRICE_STATION_ID_KEYS = ("node_id", "station_id", "stationId", "pfs_id")
FUEL_TYPE_KEYS = ("fuel_type", "fuelType")
PRICE_KEYS = ("price",)
SOURCE_TIMESTAMP_KEYS = ("price_last_updated", "last_updated", "lastUpdated", "timestamp")

_POSTCODE_RE = re.compile(r"^[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def unwrap_list(payload, possible_keys: list[str]) -> list | None:
    """
    Batches come back as { "data": [ ... ] }, { "stations": [ ... ] },
    { "prices": [ ... ] } or a bare [ ... ].
    Returns None when no list can be found.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for k in possible_keys:
            v = payload.get(k)
            if isinstance(v, list):
                return v
    return None


def first_of(record: dict, keys) -> object | None:
    for k in keys:
        v = record.get(k)
        if v is not None and v != "":
            return v
    return None


# ------------------------------------------------------------
# Postcodes
# ------------------------------------------------------------
def normalize_postcode(raw: str | None) -> str:
    """
    "wf92wf" -> "WF9 2WF", "SW1A1AA" -> "SW1A 1AA".

    The inward code is always the last 3 characters. Anything that is not
    5-7 characters once spaces are removed is returned trimmed and
    uppercased.
    """
    if not raw:
        return ""
    raw = str(raw)
    cleaned = _WHITESPACE_RE.sub("", raw).upper()
    if len(cleaned) < 5 or len(cleaned) > 7:
        return raw.strip().upper()
    return f"{cleaned[:-3]} {cleaned[-3:]}"


def outward_code(raw: str | None) -> str:
    normalized = normalize_postcode(raw)
    return normalized.split(" ")[0] if normalized else ""


def is_valid_postcode_format(raw: str | None) -> bool:
    if not raw:
        return False
    return bool(_POSTCODE_RE.match(str(raw).strip()))


# ------------------------------------------------------------
# Fuel types & prices
# ------------------------------------------------------------
def map_fuel_type(raw) -> str | None:
    if raw is None:
        return None
    s = str(raw).strip()
    s = FUEL_TYPE_ALIASES.get(s, s)
    return s if s in FUEL_TYPES else None


def parse_price(raw, *, min_pence: float = 50, max_pence: float = 300, decimals: int = 0):
    """
    Parse an upstream price such as "'0126.9000" into pence per litre.

    With decimals=0 the value is truncated to whole pence (126), with
    decimals=1 it is rounded to a tenth (126.9). Values that do not parse
    or fall outside [min_pence, max_pence] give None.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        s = str(raw).strip()
        if s.startswith("'"):
            s = s[1:]
        s = s.lstrip("0") or "0"
        if s.startswith("."):
            s = "0" + s
        try:
            value = float(s)
        except ValueError:
            return None

    if math.isnan(value) or math.isinf(value):
        return None

    if decimals <= 0:
        price = int(value)
    else:
        price = round(value, decimals)

    if price < min_pence or price > max_pence:
        return None
    return price


# ------------------------------------------------------------
# Records
# ------------------------------------------------------------
@dataclass
class StationRecord:
    external_id: str
    name: str
    brand: str | None
    address_line1: str
    address_line2: str | None
    city: str
    county: str | None
    postcode: str
    latitude: float
    longitude: float
    amenities: list[str] | None = None

    def as_dict(self) -> dict:
        return {
            "external_id": self.external_id,
            "name": self.name,
            "brand": self.brand,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "county": self.county,
            "postcode": self.postcode,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "amenities": self.amenities,
        }


@dataclass
class PriceCandidate:
    station_external_id: str
    fuel_type: str
    price: float
    source_timestamp: str


@dataclass
class NormalizationStats:
    missing_fields: int = 0
    invalid_fuel_type: int = 0
    invalid_price: int = 0

    @property
    def total(self) -> int:
        return self.missing_fields + self.invalid_fuel_type + self.invalid_price

    def as_dict(self) -> dict:
        return {
            "missingFields": self.missing_fields,
            "invalidFuelType": self.invalid_fuel_type,
            "invalidPrice": self.invalid_price,
        }


def _str_or_none(v, limit: int) -> str | None:
    if v is None or v == "":
        return None
    return str(v)[:limit]


def _float_or_zero(v) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(f) else f


def _address_of(raw: dict) -> dict:
    loc = raw.get("location")
    if isinstance(loc, dict):
        return loc
    addr = raw.get("address")
    if isinstance(addr, dict):
        return addr
    return raw


def normalize_station(raw: dict) -> StationRecord | None:
    if not isinstance(raw, dict):
        return None
    sid = first_of(raw, STATION_ID_KEYS)
    if sid is None:
        logger.debug("Skipping station record without an id")
        return None

    addr = _address_of(raw)
    # coordinates may sit beside the address rather than inside it
    coords = raw.get("location") if isinstance(raw.get("location"), dict) else raw

    line1 = first_of(addr, LINE1_KEYS)
    if line1 is None and isinstance(raw.get("address"), str):
        line1 = raw["address"]

    amenities = raw.get("amenities")
    if isinstance(amenities, list):
        amenities = [str(a) for a in amenities]
    else:
        amenities = None

    postcode = normalize_postcode(first_of(addr, POSTCODE_KEYS) or first_of(raw, POSTCODE_KEYS))

    return StationRecord(
        external_id=str(sid),
        name=str(first_of(raw, STATION_NAME_KEYS) or "Unknown Station")[:200],
        brand=_str_or_none(first_of(raw, BRAND_KEYS), 200),
        address_line1=str(line1 or "Unknown")[:200],
        address_line2=_str_or_none(first_of(addr, LINE2_KEYS), 200),
        city=str(first_of(addr, CITY_KEYS) or first_of(raw, CITY_KEYS) or "Unknown")[:100],
        county=_str_or_none(first_of(addr, COUNTY_KEYS) or first_of(raw, COUNTY_KEYS), 100),
        postcode=postcode or UNKNOWN_POSTCODE,
        latitude=_float_or_zero(first_of(coords, LATITUDE_KEYS)),
        longitude=_float_or_zero(first_of(coords, LONGITUDE_KEYS)),
        amenities=amenities,
    )


def normalize_price_records(
    items: list,
    *,
    min_pence: float = 50,
    max_pence: float = 300,
    decimals: int = 0,
    now: datetime | None = None,
) -> tuple[list[PriceCandidate], NormalizationStats]:
    """
    Flatten upstream price payloads into candidates.

    Two shapes are accepted:
      {"node_id": "...", "fuel_prices": [{"fuel_type": "E10", "price": "'0139.9000"}, ...]}
      {"station_id": "...", "fuel_type": "E10", "price": 139.9}
    """
    fallback_ts = (now or datetime.now(timezone.utc)).isoformat()
    stats = NormalizationStats()
    out: list[PriceCandidate] = []

    def _one(station_id, entry: dict) -> None:
        fuel_raw = first_of(entry, FUEL_TYPE_KEYS)
        price_raw = first_of(entry, PRICE_KEYS)
        if station_id is None or fuel_raw is None or price_raw is None:
            stats.missing_fields += 1
            return
        fuel_type = map_fuel_type(fuel_raw)
        if fuel_type is None:
            logger.debug("Skipping unknown fuel type %r for station %s", fuel_raw, station_id)
            stats.invalid_fuel_type += 1
            return
        price = parse_price(price_raw, min_pence=min_pence, max_pence=max_pence, decimals=decimals)
        if price is None:
            logger.debug("Skipping price %r for station %s (%s)", price_raw, station_id, fuel_type)
            stats.invalid_price += 1
            return
        ts = first_of(entry, SOURCE_TIMESTAMP_KEYS) or fallback_ts
        out.append(
            PriceCandidate(
                station_external_id=str(station_id),
                fuel_type=fuel_type,
                price=price,
                source_timestamp=str(ts),
            )
        )

    for item in items:
        if not isinstance(item, dict):
            stats.missing_fields += 1
            continue
        station_id = first_of(item, PRICE_STATION_ID_KEYS)
        nested = item.get("fuel_prices")
        if isinstance(nested, list):
            if not nested:
                continue
            for entry in nested:
                if isinstance(entry, dict):
                    _one(station_id, entry)
                else:
                    stats.missing_fields += 1
        else:
            _one(station_id, item)

    return out, stats
