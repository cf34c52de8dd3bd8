"""
Geography and Trade-Lane Heuristics

Country resolution for geographic filters and keyword-based trade-lane
classification of bookings.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple
import re
import unicodedata


COUNTRY_NAMES: Dict[str, str] = {
    "AE": "United Arab Emirates",
    "BD": "Bangladesh",
    "BE": "Belgium",
    "CN": "China",
    "DE": "Germany",
    "DJ": "Djibouti",
    "EG": "Egypt",
    "ES": "Spain",
    "FR": "France",
    "GB": "United Kingdom",
    "HK": "Hong Kong",
    "ID": "Indonesia",
    "IN": "India",
    "IT": "Italy",
    "JP": "Japan",
    "KE": "Kenya",
    "KR": "South Korea",
    "LK": "Sri Lanka",
    "MY": "Malaysia",
    "NL": "Netherlands",
    "OM": "Oman",
    "PK": "Pakistan",
    "QA": "Qatar",
    "SA": "Saudi Arabia",
    "SG": "Singapore",
    "TH": "Thailand",
    "TW": "Taiwan",
    "TZ": "Tanzania",
    "US": "United States",
    "VN": "Vietnam",
}

# Extra spellings (English and French) mapped to ISO-2 codes.
COUNTRY_ALIASES: Dict[str, str] = {
    "uae": "AE",
    "emirates": "AE",
    "emirats arabes unis": "AE",
    "belgique": "BE",
    "chine": "CN",
    "allemagne": "DE",
    "egypte": "EG",
    "espagne": "ES",
    "uk": "GB",
    "great britain": "GB",
    "britain": "GB",
    "england": "GB",
    "royaume-uni": "GB",
    "royaume uni": "GB",
    "inde": "IN",
    "indonesie": "ID",
    "italie": "IT",
    "japon": "JP",
    "korea": "KR",
    "coree": "KR",
    "coree du sud": "KR",
    "malaisie": "MY",
    "pays-bas": "NL",
    "pays bas": "NL",
    "holland": "NL",
    "arabie saoudite": "SA",
    "singapour": "SG",
    "thailande": "TH",
    "tanzanie": "TZ",
    "usa": "US",
    "united states of america": "US",
    "etats-unis": "US",
    "etats unis": "US",
    "viet nam": "VN",
}


def fold(value: str) -> str:
    """Lowercase and strip accents so 'Égypte' matches 'egypte'."""
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(c for c in normalized if not unicodedata.combining(c)).lower().strip()


_NAME_TO_CODE: Dict[str, str] = {fold(name): code for code, name in COUNTRY_NAMES.items()}
_NAME_TO_CODE.update(COUNTRY_ALIASES)


def resolve_country(value: str) -> Optional[str]:
    """
    Return the ISO-2 code when ``value`` designates a country, else ``None``.

    Any two-letter alphabetic value is taken as a country code. Two-letter
    port abbreviations are therefore read as countries.
    """
    if not value:
        return None
    stripped = value.strip()
    if len(stripped) == 2 and stripped.isalpha():
        return stripped.upper()
    return _NAME_TO_CODE.get(fold(stripped))


def country_name(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    return COUNTRY_NAMES.get(code.upper())


# ==================== Regions & trade lanes ====================

@dataclass(frozen=True)
class Region:
    name: str
    countries: FrozenSet[str]
    keywords: Tuple[str, ...]
    aliases: Tuple[str, ...] = ()


REGIONS: Dict[str, Region] = {
    "asia": Region(
        name="Asia",
        countries=frozenset({"CN", "HK", "SG", "KR", "JP", "TW", "VN", "MY", "TH", "ID"}),
        keywords=("shanghai", "singapore", "hong kong", "busan", "tokyo", "yokohama",
                  "ningbo", "shenzhen", "qingdao", "xiamen", "port klang", "kaohsiung"),
        aliases=("asia", "asie", "far east", "extreme-orient"),
    ),
    "europe": Region(
        name="Europe",
        countries=frozenset({"NL", "DE", "BE", "GB", "FR", "ES", "IT"}),
        keywords=("rotterdam", "hamburg", "antwerp", "felixstowe", "le havre",
                  "barcelona", "genoa", "valencia", "bremerhaven", "marseille"),
        aliases=("europe", "north europe", "med", "mediterranean"),
    ),
    "north_america": Region(
        name="North America",
        countries=frozenset({"US"}),
        keywords=("los angeles", "long beach", "new york", "savannah", "charleston",
                  "houston", "seattle", "oakland"),
        aliases=("us", "usa", "america", "north america", "amerique", "etats-unis"),
    ),
    "middle_east": Region(
        name="Middle East",
        countries=frozenset({"AE", "SA", "OM", "QA"}),
        keywords=("jebel ali", "dubai", "jeddah", "dammam", "sohar", "salalah", "hamad"),
        aliases=("middle east", "me", "gulf", "moyen-orient", "moyen orient"),
    ),
    "indian_subcontinent": Region(
        name="Indian Subcontinent",
        countries=frozenset({"IN", "PK", "BD", "LK"}),
        keywords=("nhava sheva", "mundra", "chennai", "karachi", "chittagong", "colombo"),
        aliases=("india", "indian subcontinent", "isc", "inde", "sous-continent indien"),
    ),
    "east_africa": Region(
        name="East Africa",
        countries=frozenset({"KE", "TZ", "DJ", "EG"}),
        keywords=("mombasa", "dar es salaam", "djibouti", "port said", "sokhna"),
        aliases=("east africa", "africa", "afrique", "afrique de l'est"),
    ),
}


@dataclass(frozen=True)
class TradeLane:
    name: str
    regions: Tuple[str, str]


TRADE_LANES: List[TradeLane] = [
    TradeLane("Asia-Europe", ("asia", "europe")),
    TradeLane("Transpacific", ("asia", "north_america")),
    TradeLane("Transatlantic", ("europe", "north_america")),
    TradeLane("Asia-Middle East", ("asia", "middle_east")),
    TradeLane("Asia-Indian Subcontinent", ("asia", "indian_subcontinent")),
    TradeLane("Asia-East Africa", ("asia", "east_africa")),
    TradeLane("Europe-Middle East", ("europe", "middle_east")),
]

_LANE_ALIASES: Dict[str, str] = {
    "transpacific": "Transpacific",
    "transpacifique": "Transpacific",
    "tpeb": "Transpacific",
    "transatlantic": "Transatlantic",
    "transatlantique": "Transatlantic",
    "far east": "Asia-Europe",
    "fe": "Asia-Europe",
}


def _region_for_alias(token: str) -> Optional[str]:
    token = fold(token)
    for key, region in REGIONS.items():
        if token == key or token in region.aliases or token == fold(region.name):
            return key
    return None


def resolve_trade_lane(value: str) -> Optional[TradeLane]:
    """Map a free-form trade name ('asia-europe', 'Europe to Asia', 'transpacific') to a lane."""
    if not value:
        return None
    folded = fold(value)
    alias = _LANE_ALIASES.get(folded)
    if alias:
        return next(lane for lane in TRADE_LANES if lane.name == alias)
    for lane in TRADE_LANES:
        if folded == fold(lane.name):
            return lane
    parts = [p for p in re.split(r"\s*(?:/|\bto\b|\bvers\b|->|-|–)\s*", folded) if p]
    if len(parts) != 2:
        return None
    regions = {_region_for_alias(p) for p in parts}
    if None in regions or len(regions) != 2:
        return None
    for lane in TRADE_LANES:
        if set(lane.regions) == regions:
            return lane
    return None


def _in_region(region: Region, country: Optional[str], *names: Optional[str]) -> bool:
    if country and country.upper() in region.countries:
        return True
    for name in names:
        if not name:
            continue
        folded = fold(name)
        if any(keyword in folded for keyword in region.keywords):
            return True
    return False


def regions_of(country: Optional[str], *names: Optional[str]) -> List[str]:
    return [key for key, region in REGIONS.items() if _in_region(region, country, *names)]


def determine_trade(booking) -> Optional[str]:
    """
    Classify a booking into a trade lane from its load/discharge countries,
    falling back to keyword matches on port names and origin/destination.
    Returns ``None`` when no lane fits.
    """
    load_side = regions_of(booking.pol_country, booking.pol_name, booking.origin)
    discharge_side = regions_of(booking.pod_country, booking.pod_name, booking.destination)
    for lane in TRADE_LANES:
        a, b = lane.regions
        if (a in load_side and b in discharge_side) or (b in load_side and a in discharge_side):
            return lane.name
    return None


def location_terms(booking) -> Iterable[str]:
    """All location strings attached to a booking (codes, names, countries)."""
    for value in (
        booking.pol_code, booking.pol_name, booking.pol_country, country_name(booking.pol_country),
        booking.pod_code, booking.pod_name, booking.pod_country, country_name(booking.pod_country),
        booking.origin, booking.destination,
    ):
        if value:
            yield value
