"""
Bank statement CSV parsing.

Handles the layouts exported by the common US banks plus a generic fallback.
Lines are split before quote handling, so a quoted field containing a line
break is not supported.
"""
import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple, Union

from dateutil import parser as date_parser


@dataclass(frozen=True)
class ColumnPatterns:
    """Header aliases for the three columns an import needs."""
    date_columns: Tuple[str, ...]
    amount_columns: Tuple[str, ...]
    description_columns: Tuple[str, ...]


# Detection order matters: first bank whose aliases all match wins
BANK_PATTERNS: Dict[str, ColumnPatterns] = {
    "chase": ColumnPatterns(
        date_columns=("Transaction Date", "Posting Date"),
        amount_columns=("Amount",),
        description_columns=("Description",),
    ),
    "bofa": ColumnPatterns(
        date_columns=("Date",),
        amount_columns=("Amount",),
        description_columns=("Description", "Payee"),
    ),
    "wellsfargo": ColumnPatterns(
        date_columns=("Date",),
        amount_columns=("Amount",),
        description_columns=("Description",),
    ),
    "capitalone": ColumnPatterns(
        date_columns=("Transaction Date", "Posted Date"),
        amount_columns=("Debit", "Credit", "Amount"),
        description_columns=("Description", "Merchant"),
    ),
    "generic": ColumnPatterns(
        date_columns=("date", "transaction_date", "Transaction Date"),
        amount_columns=("amount", "value"),
        description_columns=("description", "merchant", "memo"),
    ),
}

GENERIC_FORMAT = "generic"

_LINE_SPLIT = re.compile(r"\r?\n")

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_DATE_PATTERNS = [
    re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"),         # MM/DD/YYYY
    re.compile(r"^(\d{2})-(\d{2})-(\d{4})$"),         # MM-DD-YYYY
    re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$"),   # M/D/YY or M/D/YYYY
]

_AMOUNT_NOISE = re.compile(r"[$€£¥,\s]")
_PARENTHESIZED = re.compile(r"\(([^)]+)\)")
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

CENTS = Decimal("0.01")
ZERO_AMOUNT = Decimal("0.00")


# =============================================================================
# Tabular parsing
# =============================================================================

def parse_csv_line(line: str) -> List[str]:
    """Split one line on commas outside quotes. ``""`` inside quotes is a literal quote."""
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0

    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def parse_csv(content: str) -> Tuple[List[str], List[List[str]]]:
    """Return (headers, rows). Blank lines are dropped."""
    lines = [line for line in _LINE_SPLIT.split(content or "") if line.strip()]
    if not lines:
        return [], []

    headers = parse_csv_line(lines[0].lstrip("\ufeff"))
    rows = [parse_csv_line(line) for line in lines[1:]]
    return headers, rows


# =============================================================================
# Column detection
# =============================================================================

def _has_any(header_set: set, names: Tuple[str, ...]) -> bool:
    return any(name.lower() in header_set for name in names)


def detect_bank_format(headers: List[str]) -> str:
    """Name of the first bank whose date, amount and description aliases all appear."""
    header_set = {h.lower() for h in headers}

    for bank, patterns in BANK_PATTERNS.items():
        if bank == GENERIC_FORMAT:
            continue
        if (
            _has_any(header_set, patterns.date_columns)
            and _has_any(header_set, patterns.amount_columns)
            and _has_any(header_set, patterns.description_columns)
        ):
            return bank

    return GENERIC_FORMAT


def find_column(headers: List[str], possible_names: Tuple[str, ...]) -> int:
    """Index of the first alias present (case-insensitive), or -1."""
    lowered = [h.lower() for h in headers]
    for name in possible_names:
        try:
            return lowered.index(name.lower())
        except ValueError:
            continue
    return -1


# =============================================================================
# Field parsing
# =============================================================================

def _valid_iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_date(value: Optional[str]) -> Optional[str]:
    """
    Normalize a statement date to ``YYYY-MM-DD``.

    Tries ISO, MM/DD/YYYY, MM-DD-YYYY and M/D/YY(YY) in order, then falls
    back to dateutil. Two-digit years above 50 are 19xx, otherwise 20xx.
    Returns None when nothing yields a real calendar date.
    """
    if not value:
        return None
    value = value.strip()

    match = _ISO_DATE.match(value)
    if match:
        year, month, day = match.groups()
        parsed = _valid_iso(int(year), int(month), int(day))
        if parsed:
            return parsed

    for pattern in _US_DATE_PATTERNS:
        match = pattern.match(value)
        if not match:
            continue
        month, day, year = match.groups()
        if len(year) == 2:
            year = f"19{year}" if int(year) > 50 else f"20{year}"
        parsed = _valid_iso(int(year), int(month), int(day))
        if parsed:
            return parsed

    try:
        return date_parser.parse(value).date().isoformat()
    except (ValueError, OverflowError):
        return None


def parse_amount(value: Optional[str]) -> Optional[float]:
    """
    Parse a statement amount.

    Currency symbols, thousands separators and whitespace are ignored and
    ``(45.00)`` means -45.00. Trailing text after the number is ignored.
    """
    if not value:
        return None

    cleaned = _AMOUNT_NOISE.sub("", value)
    cleaned = _PARENTHESIZED.sub(r"-\1", cleaned, count=1)

    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return None
    return float(match.group(0))


def normalize_amount(amount: Union[float, Decimal]) -> Optional[Decimal]:
    """
    Round to cents the way a ``NUMERIC(15,2)`` column stores the value.

    Half-up rounding, and ``-0.00`` folds to ``0.00``. Rows are hashed and
    inserted with this value, so a re-read row hashes the same as the CSV
    line it came from. Returns None for values that are not finite.
    """
    try:
        value = Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    if value.is_zero():
        return ZERO_AMOUNT
    return value


# =============================================================================
# Dedup hash
# =============================================================================

def format_amount(amount: float) -> str:
    """Shortest round-trip form without a trailing ``.0`` (1234.5, -45)."""
    text = repr(float(amount))
    if text.endswith(".0"):
        text = text[:-2]
    return text


def generate_transaction_hash(txn_date: str, amount: float, description: str) -> str:
    """
    32-bit rolling hash of ``date|amount|description`` as lowercase hex.

    Characters are fed in as UTF-16 code units, so a character outside the
    BMP (an emoji, say) contributes its surrogate pair.

    Not collision resistant: two different rows can share a hash, in which
    case the second is treated as a duplicate.
    """
    text = f"{txn_date}|{format_amount(amount)}|{description}"
    encoded = text.encode("utf-16-le", "surrogatepass")
    value = 0
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return format(abs(value), "x")
