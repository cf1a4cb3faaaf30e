import re
from typing import Iterable, List

MAX_IDENTIFIER_LENGTH = 64

_INVALID_CHARS = re.compile(r"[^0-9A-Za-z_]")
_REPEATED_UNDERSCORES = re.compile(r"_+")


def sanitize_identifier(name: str, max_length: int = MAX_IDENTIFIER_LENGTH) -> str:
    """
    Turn an arbitrary source name into a safe MySQL identifier.

    Anything outside [0-9A-Za-z_] becomes "_", repeated underscores are
    collapsed, a leading digit gets a "T_" prefix, and the result is cut
    to `max_length`. Applying it twice gives the same result as once.

    Examples:
        "Order Details"  -> "Order_Details"
        "2019 Sales"     -> "T_2019_Sales"
        "Qty (kg)"       -> "Qty_kg_"
    """
    cleaned = _INVALID_CHARS.sub("_", name or "")
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    if not cleaned:
        cleaned = "_"
    if cleaned[0].isdigit():
        cleaned = "T_" + cleaned
    return cleaned[:max_length]


def destination_table_name(source_table: str, prefix: str = "") -> str:
    return sanitize_identifier(f"{prefix}{source_table}")


def unique_identifiers(names: Iterable[str], max_length: int = MAX_IDENTIFIER_LENGTH) -> List[str]:
    """
    Sanitize a list of column names so that no two collide.

    MySQL column names are case-insensitive, so "Total" and "total"
    clash; later duplicates get a numeric suffix.
    """
    result = []
    seen = set()
    for name in names:
        base = sanitize_identifier(name, max_length)
        candidate = base
        counter = 2
        while candidate.lower() in seen:
            suffix = f"_{counter}"
            candidate = base[: max_length - len(suffix)] + suffix
            counter += 1
        seen.add(candidate.lower())
        result.append(candidate)
    return result


def quote_identifier(name: str) -> str:
    """Backtick-quote a MySQL identifier."""
    return "`" + name.replace("`", "``") + "`"
