"""
Structured Data Extractor
=========================
Regex scan of recognized document text (German conventions).

  dates     DD.MM.YYYY  DD.MM.YY  YYYY-MM-DD  "15. März 2024"
  amounts   1.234,56 €  /  1.234,56  /  12 EUR  /  99,90 Euro
  keywords  per-category hit counts from the category registry
  sender    company-like line near the top (GmbH / AG / KG ... first)

All results are raw strings as they appear in the text. Picking the
"right" date or amount is left to the consumer (see extract_best_date).

Pure functions, no I/O. An empty text yields an empty StructuredData,
never an error.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from smartscan.categories import CategoryRegistry


# ─── Compiled patterns ────────────────────────────────────────────────────────

_GERMAN_MONTHS: Dict[str, int] = {
    "januar": 1, "februar": 2, "märz": 3, "maerz": 3, "april": 4, "mai": 5,
    "juni": 6, "juli": 7, "august": 8, "september": 9, "oktober": 10,
    "november": 11, "dezember": 12,
}

_MONTH_NAMES = (
    r'(?:Januar|Februar|März|Maerz|April|Mai|Juni|Juli|August|'
    r'September|Oktober|November|Dezember)'
)

# Lookarounds keep the patterns from overlapping: "15.03.2024" must not
# also be reported as "15.03.20".
_DATE_PATTERNS = [
    re.compile(r'(?<![\d.])(\d{1,2})\.(\d{1,2})\.(\d{4})(?!\d)'),              # 15.03.2024
    re.compile(r'(?<![\d.])(\d{1,2})\.(\d{1,2})\.(\d{2})(?!\d)'),              # 15.03.24
    re.compile(r'(?<![\d\-])(\d{4})-(\d{2})-(\d{2})(?![\d\-])'),               # 2024-03-15
    re.compile(r'(?<!\d)(\d{1,2})\.\s*(' + _MONTH_NAMES + r')\s*(\d{4})(?!\d)',
               re.IGNORECASE),                                                 # 15. März 2024
]

_CURRENCY = r'(?:€|Euro|EUR)(?![A-Za-z])'

# German amounts: "." thousands separator, "," decimals. A bare integer only
# counts when a currency marker follows; otherwise the ",dd" part is required.
_AMOUNT_PATTERN = re.compile(
    r'(?<![\d.,])'
    r'(?:\d{1,3}(?:\.\d{3})+|\d+)'
    r'(?:,\d{2}(?!\d)(?:\s*' + _CURRENCY + r')?|\s*' + _CURRENCY + r')',
    re.IGNORECASE,
)

_SENDER_PATTERNS = [
    # Company with legal-entity suffix
    re.compile(
        r'^([A-ZÄÖÜ][A-Za-zäöüßÄÖÜ\s&.\-]+?(?:GmbH|AG|e\.V\.|KG|OHG|mbH))(?![A-Za-zäöüß])'
    ),
    # Leading capitalized word (letterhead in caps)
    re.compile(r'^([A-ZÄÖÜ]{2,}[A-Za-zäöüßÄÖÜ\s&.\-]*)'),
]

_SENDER_SCAN_LINES = 10
_BEST_DATE_WINDOW_DAYS = 2 * 365


# ─── Data types ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KeywordHit:
    category: str
    count: int
    matches: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StructuredData:
    """Built once per OCR pass; read-only afterwards."""
    dates: Tuple[str, ...] = ()
    amounts: Tuple[str, ...] = ()
    keywords: Tuple[KeywordHit, ...] = ()
    sender: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "dates": list(self.dates),
            "amounts": list(self.amounts),
            "keywords": [
                {"category": k.category, "count": k.count, "matches": list(k.matches)}
                for k in self.keywords
            ],
            "sender": self.sender,
        }


# ─── Extractor ────────────────────────────────────────────────────────────────

class StructuredDataExtractor:
    """
    Usage
    -----
    extractor = StructuredDataExtractor(CategoryRegistry.load())
    data = extractor.extract(ocr_result.text)
    """

    def __init__(self, registry: Optional[CategoryRegistry] = None):
        self.registry = registry or CategoryRegistry.load()

    def extract(self, text: str) -> StructuredData:
        text = text or ""
        data = StructuredData(
            dates=tuple(extract_dates(text)),
            amounts=tuple(extract_amounts(text)),
            keywords=tuple(self.extract_keywords(text)),
            sender=extract_sender(text),
        )
        logger.debug(
            f"[Extractor] dates={len(data.dates)} amounts={len(data.amounts)} "
            f"keywords={[k.category for k in data.keywords]} sender={data.sender!r}"
        )
        return data

    def extract_keywords(self, text: str) -> List[KeywordHit]:
        """Count registry pattern hits per category, most hits first."""
        hits: List[KeywordHit] = []
        for category in self.registry:
            if category.pattern is None:
                continue
            found = [m.group(0) for m in category.pattern.finditer(text)]
            if not found:
                continue
            distinct = tuple(dict.fromkeys(f.lower() for f in found))
            hits.append(KeywordHit(category=category.id, count=len(found), matches=distinct))

        hits.sort(key=lambda h: h.count, reverse=True)
        return hits


def extract_dates(text: str) -> List[str]:
    """All raw date strings, grouped by pattern; duplicates kept."""
    dates: List[str] = []
    for pattern in _DATE_PATTERNS:
        dates.extend(m.group(0) for m in pattern.finditer(text))
    return dates


def extract_amounts(text: str) -> List[str]:
    """All raw currency amounts in order of appearance."""
    return [m.group(0).strip() for m in _AMOUNT_PATTERN.finditer(text)]


def extract_sender(text: str) -> Optional[str]:
    """
    First company-like line among the first non-trivial lines.

    Pattern priority wins over line order: a "... GmbH" on line 5 beats an
    all-caps word on line 1.
    """
    lines = [l.strip() for l in text.splitlines() if len(l.strip()) > 3]
    lines = lines[:_SENDER_SCAN_LINES]
    if not lines:
        return None

    for pattern in _SENDER_PATTERNS:
        for line in lines:
            match = pattern.match(line)
            if match:
                candidate = match.group(1).strip()
                if 3 < len(candidate) < 100:
                    return candidate
    return None


# ─── Value parsing ────────────────────────────────────────────────────────────

def _normalize_year(year: int) -> int:
    """Two-digit years pivot at 50: 24 → 2024, 87 → 1987."""
    if year < 100:
        return year + (2000 if year < 50 else 1900)
    return year


def parse_date(raw: str) -> Optional[date]:
    """Parse one raw date string; None if it matches no format or is invalid."""
    raw = (raw or "").strip()

    m = re.fullmatch(r'(\d{1,2})\.(\d{1,2})\.(\d{2}|\d{4})', raw)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), _normalize_year(int(m.group(3)))
    else:
        m = re.fullmatch(r'(\d{4})-(\d{2})-(\d{2})', raw)
        if m:
            year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
        else:
            m = re.fullmatch(r'(\d{1,2})\.\s*([A-Za-zäÄ]+)\s*(\d{4})', raw)
            if not m or m.group(2).lower() not in _GERMAN_MONTHS:
                return None
            day, month, year = int(m.group(1)), _GERMAN_MONTHS[m.group(2).lower()], int(m.group(3))

    try:
        return date(year, month, day)
    except ValueError:
        return None


def extract_best_date(dates: Sequence[str], today: Optional[date] = None) -> Optional[date]:
    """
    Pick the candidate closest to `today` within a two-year window.

    Unparseable dates and dates 2+ years away are ignored.
    """
    if not dates:
        return None
    today = today or date.today()

    best: Optional[date] = None
    best_diff: Optional[int] = None
    for raw in dates:
        parsed = parse_date(raw)
        if parsed is None:
            continue
        diff = abs((today - parsed).days)
        if diff >= _BEST_DATE_WINDOW_DAYS:
            continue
        if best_diff is None or diff < best_diff:
            best, best_diff = parsed, diff
    return best


def parse_amount(raw: str) -> Optional[float]:
    """'1.234,56 €' → 1234.56"""
    cleaned = re.sub(r'[^\d,.]', '', raw or "")
    cleaned = cleaned.replace('.', '').replace(',', '.')
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None
