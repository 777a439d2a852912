"""
ENTITY PARSING HELPERS

Purpose: Turn raw user text into numbers the order understands
- Dimensions: "4x6x2", "4 x 6", "4,6,2", "4\" by 6\"", "l:5, w:3, h:7"
- Quantities: "5000", "5,000", "5k", "2.5k pcs"

Shared by the rule-based NLU backend, the entity reconciler, and the
dimension/quantity step handlers so every entry point parses the same way.
"""
import re
from typing import List, Optional, Tuple

_NUM = r"\d+(?:\.\d+)?"
_UNIT = r'(?:\s*(?:"|inches|inch|in|cm|mm))?'
_SEP = r"\s*(?:x|×|\*|by)\s*"

# Two to four numbers joined by x / × / * / "by", units optional
DIMENSION_RE = re.compile(rf"{_NUM}{_UNIT}(?:{_SEP}{_NUM}{_UNIT}){{1,3}}", re.IGNORECASE)

# Keyed form: "l:5, w:3, h:7" or "w=4 h=6"
KEYED_DIMENSION_RE = re.compile(rf"\b([a-z])\s*[:=]\s*({_NUM})", re.IGNORECASE)

# Separators accepted between positional values
SEPARATOR_RE = re.compile(r"(?:[x×*,;\s]|\bby\b)+", re.IGNORECASE)
UNIT_SUFFIX_RE = re.compile(r'(?:"|inches|inch|in|cm|mm)$', re.IGNORECASE)

QUANTITY_RE = re.compile(
    r"(?<![\d.])(\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)\s*(k|m)?\b(?!\s*(?:x|×|\*|\"|inch|in\b))",
    re.IGNORECASE,
)
QUANTITY_NOISE = re.compile(r"\b(pcs|pieces|units|qty|quantity|nos)\b\.?", re.IGNORECASE)
MULTIPLIERS = {"k": 1_000, "m": 1_000_000}


def parse_dimension_values(text: str) -> List[float]:
    """
    Parse text into an ordered list of dimension values.

    Examples:
        "4x6x2"          -> [4.0, 6.0, 2.0]
        " 4 ×  6 , 2 "   -> [4.0, 6.0, 2.0]
        "l:5,w:3,h:7"    -> [5.0, 3.0, 7.0]
        "4\" by 6\""     -> [4.0, 6.0]
        "big"            -> []
    """
    if not text:
        return []

    keyed = KEYED_DIMENSION_RE.findall(text)
    if len(keyed) >= 2:
        return [float(value) for _, value in keyed]

    values: List[float] = []
    for token in SEPARATOR_RE.split(text.strip().lower()):
        if not token:
            continue
        token = UNIT_SUFFIX_RE.sub("", token)
        try:
            value = float(token)
        except ValueError:
            continue
        if value > 0:
            values.append(value)
    return values


def find_dimension_spans(text: str) -> List[Tuple[str, Tuple[int, int]]]:
    """Locate dimension-looking substrings ("4x6x2") inside free text."""
    spans = [(m.group(0), m.span()) for m in DIMENSION_RE.finditer(text or "")]
    keyed = list(KEYED_DIMENSION_RE.finditer(text or ""))
    if len(keyed) >= 2:
        start, end = keyed[0].start(), keyed[-1].end()
        spans.append((text[start:end], (start, end)))
    return spans


def parse_quantity(text: str) -> Optional[int]:
    """
    Parse one quantity mention.

    Examples:
        "5000" -> 5000, "5,000" -> 5000, "5k" -> 5000, "2.5K pcs" -> 2500
        "abc" -> None, "0" -> None
    """
    if text is None:
        return None
    cleaned = QUANTITY_NOISE.sub("", str(text)).strip().lower().replace(",", "")
    match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*(k|m)?", cleaned)
    if not match:
        return None
    value = float(match.group(1)) * MULTIPLIERS.get(match.group(2) or "", 1)
    quantity = int(round(value))
    return quantity if quantity > 0 else None


def find_quantities(text: str, minimum: int = 1) -> List[int]:
    """
    Find every quantity in free text, skipping numbers that belong to dimensions.

    "Need 5000 pouches 4x6x2, also 10k" -> [5000, 10000]
    """
    if not text:
        return []

    masked = text
    for _, (start, end) in find_dimension_spans(text):
        masked = masked[:start] + " " * (end - start) + masked[end:]

    found: List[int] = []
    for match in QUANTITY_RE.finditer(masked):
        quantity = parse_quantity(f"{match.group(1)}{match.group(2) or ''}")
        if quantity is not None and quantity >= minimum and quantity not in found:
            found.append(quantity)
    return found
