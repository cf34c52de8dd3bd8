"""
Temporal and language helpers for the query translator

Relative periods ("last quarter", "ce mois-ci") are resolved against the
request date here rather than trusted to the model, so the same question
asked on the same day always yields the same range.
"""
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional, Tuple

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from bookingiq.schemas.query import DateRange, Language


class BilingualParserInfo(date_parser.parserinfo):
    """dateutil vocabulary extended with French month names."""

    MONTHS = [
        ("Jan", "January", "janvier", "janv"),
        ("Feb", "February", "février", "fevrier", "févr", "fevr"),
        ("Mar", "March", "mars"),
        ("Apr", "April", "avril", "avr"),
        ("May", "mai"),
        ("Jun", "June", "juin"),
        ("Jul", "July", "juillet", "juil"),
        ("Aug", "August", "août", "aout"),
        ("Sep", "Sept", "September", "septembre"),
        ("Oct", "October", "octobre"),
        ("Nov", "November", "novembre"),
        ("Dec", "December", "décembre", "decembre", "déc"),
    ]
    JUMP = date_parser.parserinfo.JUMP + ["le", "du", "er"]


_PARSER_INFO = BilingualParserInfo()
_YEAR_FIRST_RE = re.compile(r"^\d{4}\b")


def normalize_date(value: Any, today: date) -> date:
    """
    Parse a date-ish value to a calendar date. ISO strings are read directly;
    anything else goes through dateutil (day-first unless the year leads, so
    ``15/03/2024`` is the 15th of March). Missing components default to the
    first of the month and year. Only unparseable values become ``today``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return today
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return date_parser.parse(
            text,
            parserinfo=_PARSER_INFO,
            dayfirst=not _YEAR_FIRST_RE.match(text),
            default=datetime(today.year, 1, 1),
        ).date()
    except (ValueError, OverflowError):
        return today


# ==================== Period arithmetic ====================

def _month_range(day: date) -> Tuple[date, date]:
    start = day.replace(day=1)
    return start, start + relativedelta(months=1) - timedelta(days=1)


def _quarter_range(year: int, quarter: int) -> Tuple[date, date]:
    start = date(year, (quarter - 1) * 3 + 1, 1)
    return start, start + relativedelta(months=3) - timedelta(days=1)


def _quarter_of(day: date) -> int:
    return (day.month - 1) // 3 + 1


_NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6, "twelve": 12,
    "un": 1, "une": 1, "deux": 2, "trois": 3, "quatre": 4, "cinq": 5, "six": 6, "douze": 12,
}

_NUMBER = r"(\d+|one|two|three|four|five|six|twelve|un|une|deux|trois|quatre|cinq|douze)"
_LAST_N_EN_RE = re.compile(r"\b(?:last|past|previous)\s+" + _NUMBER + r"\s+(days?|weeks?|months?)\b", re.IGNORECASE)
_LAST_N_FR_RE = re.compile(
    r"\b" + _NUMBER + r"\s+(?:derniers|dernières|dernieres)\s+(jours|semaines|mois)\b", re.IGNORECASE
)
_QUARTER_RE = re.compile(r"\b(?:q|t)([1-4])\s*[-/ ]?\s*(\d{4})\b", re.IGNORECASE)
_QUARTER_WORD_RE = re.compile(
    r"\b(first|second|third|fourth|1st|2nd|3rd|4th|premier|deuxième|deuxieme|troisième|troisieme|quatrième|quatrieme)"
    r"\s+(?:quarter|trimestre)\s+(?:of\s+|de\s+|d')?(\d{4})\b",
    re.IGNORECASE,
)
_HALF_RE = re.compile(
    r"\b(?:(h1|h2)\s*(\d{4})|(first|second|premier|deuxième|deuxieme)\s+(?:half|semestre)\s+(?:of\s+|de\s+)?(\d{4}))\b",
    re.IGNORECASE,
)
_YEAR_RE = re.compile(r"\b(?:in|during|for|year|en|année|annee)\s+(\d{4})\b", re.IGNORECASE)

_QUARTER_WORDS = {
    "first": 1, "1st": 1, "premier": 1,
    "second": 2, "2nd": 2, "deuxième": 2, "deuxieme": 2,
    "third": 3, "3rd": 3, "troisième": 3, "troisieme": 3,
    "fourth": 4, "4th": 4, "quatrième": 4, "quatrieme": 4,
}

# (pattern, resolver) pairs checked in order; the first match wins.
_RELATIVE_PATTERNS = [
    (r"\b(?:today|aujourd'hui|aujourd’hui)\b", "today"),
    (r"\b(?:yesterday|hier)\b", "yesterday"),
    (r"\b(?:this|current)\s+week\b|\bcette\s+semaine\b", "this_week"),
    (r"\b(?:last|previous|past)\s+week\b|\bsemaine\s+(?:dernière|derniere|passée|passee)\b", "last_week"),
    (r"\b(?:this|current)\s+month\b|\bce\s+mois(?:-ci)?\b|\bmois\s+en\s+cours\b", "this_month"),
    (r"\b(?:last|previous|past)\s+month\b|\bmois\s+(?:dernier|précédent|precedent|passé|passe)\b", "last_month"),
    (r"\b(?:this|current)\s+quarter\b|\bce\s+trimestre\b|\btrimestre\s+en\s+cours\b", "this_quarter"),
    (r"\b(?:last|previous|past)\s+quarter\b|\btrimestre\s+(?:dernier|précédent|precedent|passé|passe)\b", "last_quarter"),
    (r"\b(?:this|current)\s+year\b|\bcette\s+année\b|\bcette\s+annee\b|\byear\s+to\s+date\b|\bytd\b", "this_year"),
    (r"\b(?:last|previous|past)\s+year\b|\bannée\s+(?:dernière|derniere|passée|passee)\b"
     r"|\bannee\s+(?:derniere|passee)\b|\bl'an\s+dernier\b", "last_year"),
]


def _resolve_named(kind: str, today: date) -> Tuple[date, date]:
    if kind == "today":
        return today, today
    if kind == "yesterday":
        day = today - timedelta(days=1)
        return day, day
    if kind == "this_week":
        return today - timedelta(days=today.weekday()), today
    if kind == "last_week":
        start = today - timedelta(days=today.weekday() + 7)
        return start, start + timedelta(days=6)
    if kind == "this_month":
        return today.replace(day=1), today
    if kind == "last_month":
        return _month_range(today - relativedelta(months=1))
    if kind == "this_quarter":
        start, _ = _quarter_range(today.year, _quarter_of(today))
        return start, today
    if kind == "last_quarter":
        start, _ = _quarter_range(today.year, _quarter_of(today))
        previous = start - relativedelta(months=3)
        return _quarter_range(previous.year, _quarter_of(previous))
    if kind == "this_year":
        return date(today.year, 1, 1), today
    if kind == "last_year":
        return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)
    raise ValueError(f"Unknown period kind: {kind}")


def _resolve_last_n(amount: int, unit: str, today: date) -> Tuple[date, date]:
    unit = unit.lower()
    if unit.startswith(("day", "jour")):
        return today - timedelta(days=amount - 1), today
    if unit.startswith(("week", "semaine")):
        return today - timedelta(weeks=amount) + timedelta(days=1), today
    return today - relativedelta(months=amount) + timedelta(days=1), today


def resolve_relative_period(text: str, today: date) -> Optional[DateRange]:
    """
    Resolve the first recognised period expression in ``text`` (English or
    French) against ``today``. Returns ``None`` when nothing is recognised.
    """
    if not text:
        return None
    lowered = text.lower()

    match = _QUARTER_RE.search(lowered)
    if match:
        start, end = _quarter_range(int(match.group(2)), int(match.group(1)))
        return DateRange(start=start, end=end)

    match = _QUARTER_WORD_RE.search(lowered)
    if match:
        start, end = _quarter_range(int(match.group(2)), _QUARTER_WORDS[match.group(1)])
        return DateRange(start=start, end=end)

    match = _HALF_RE.search(lowered)
    if match:
        if match.group(1):
            half, year = (1 if match.group(1) == "h1" else 2), int(match.group(2))
        else:
            half, year = (1 if match.group(3) in ("first", "premier") else 2), int(match.group(4))
        start = date(year, 1 if half == 1 else 7, 1)
        end = start + relativedelta(months=6) - timedelta(days=1)
        return DateRange(start=start, end=end)

    match = _LAST_N_EN_RE.search(lowered) or _LAST_N_FR_RE.search(lowered)
    if match:
        raw_amount = match.group(1)
        amount = int(raw_amount) if raw_amount.isdigit() else _NUMBER_WORDS[raw_amount]
        if amount > 0:
            start, end = _resolve_last_n(amount, match.group(2), today)
            return DateRange(start=start, end=end)

    for pattern, kind in _RELATIVE_PATTERNS:
        if re.search(pattern, lowered):
            start, end = _resolve_named(kind, today)
            return DateRange(start=start, end=end)

    match = _YEAR_RE.search(lowered)
    if match:
        year = int(match.group(1))
        return DateRange(start=date(year, 1, 1), end=date(year, 12, 31))
    return None


# ==================== Language ====================

FRENCH_WORDS = frozenset({
    "je", "le", "la", "les", "de", "des", "du", "un", "une", "et", "à", "dans", "pour", "sur",
    "avec", "quel", "quels", "quelle", "combien", "trimestre", "mois", "année", "semaine",
    "chargeur", "chargeurs", "entre", "depuis", "donne", "moi",
})

ENGLISH_WORDS = frozenset({
    "the", "and", "for", "with", "from", "to", "of", "what", "which", "how", "many", "show",
    "me", "quarter", "month", "year", "week", "last", "by", "between",
})

_WORD_RE = re.compile(r"[a-zàâäçéèêëîïôöùûüÿœ']+", re.IGNORECASE)


def detect_language(text: str) -> Language:
    """Keyword-frequency guess: French and English markers together mean mixed."""
    words = _WORD_RE.findall((text or "").lower())
    french = sum(1 for w in words if w in FRENCH_WORDS)
    english = sum(1 for w in words if w in ENGLISH_WORDS)
    if french > 0 and english > 0:
        return Language.MIXED
    if french >= 2:
        return Language.FR
    return Language.EN
