"""
Size / colour resolution for Stock variants.

Stock instances either send structured options ({"type": "size", "value": "M"})
or only a free-text variant name such as "Red / M" or "M-Red".
"""
import re
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_SIZE = "FREE"
DEFAULT_COLOR = "-"

_SIZE_OPTION = re.compile(r"ไซส์|size", re.IGNORECASE)
_COLOR_OPTION = re.compile(r"สี|colou?r", re.IGNORECASE)
_SIZE_VALUE = re.compile(r"^(XS|S|M|L|XL|2XL|3XL|4XL|5XL|FREE|\d+)$", re.IGNORECASE)
_NAME_SEPARATORS = re.compile(r"\s*[/\-,]\s*")


def _find_option(options: List[Dict[str, Any]], pattern: re.Pattern) -> Optional[str]:
    for option in options:
        option_type = str(option.get("type") or "")
        if pattern.search(option_type):
            value = option.get("value")
            return str(value) if value not in (None, "") else None
    return None


def parse_variant_name(name: Optional[str]) -> Tuple[str, str]:
    """
    Split a variant name into (size, color).

    "แดง / M" -> ("M", "แดง"), "XL" -> ("XL", "-"), "Navy" -> ("FREE", "Navy").
    With two parts and no recognisable size, the first part is the colour.
    """
    if not name or not name.strip():
        return DEFAULT_SIZE, DEFAULT_COLOR

    parts = [part.strip() for part in _NAME_SEPARATORS.split(name) if part.strip()]

    if len(parts) == 2:
        if _SIZE_VALUE.match(parts[0]):
            return parts[0].upper(), parts[1]
        if _SIZE_VALUE.match(parts[1]):
            return parts[1].upper(), parts[0]
        return parts[1], parts[0]

    if len(parts) == 1:
        if _SIZE_VALUE.match(parts[0]):
            return parts[0].upper(), DEFAULT_COLOR
        return DEFAULT_SIZE, parts[0]

    return DEFAULT_SIZE, name.strip()


def resolve_variant_options(
    options: Optional[List[Dict[str, Any]]], name: Optional[str]
) -> Tuple[str, str]:
    """Prefer structured options; fall back to parsing the variant name."""
    if options:
        size = _find_option(options, _SIZE_OPTION)
        color = _find_option(options, _COLOR_OPTION)
        if size or color:
            return (size.upper() if size else DEFAULT_SIZE), (color or DEFAULT_COLOR)

    return parse_variant_name(name)
