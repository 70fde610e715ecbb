"""key=value parsing for --var and --field options."""

import json
import re
from collections.abc import Iterable
from typing import Any

from opsctl.errors import InvalidKey, InvalidPair

_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")


def parse_value(raw: str) -> Any:
    """Coerce a raw option value into bool/None/int/float/JSON, else return it unchanged."""
    value = raw.strip()

    if value == "true":
        return True
    if value == "false":
        return False
    if value == "null":
        return None

    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)

    if (value.startswith("[") and value.endswith("]")) or (value.startswith("{") and value.endswith("}")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return raw

    return raw


def parse_key_value_pairs(pairs: Iterable[str], coerce: bool = True) -> dict[str, Any]:
    """Split each pair on the first '=' and build a mapping.

    With coerce=False every value stays a string, which is what template
    --var overrides want ("42" renders as "42").
    """
    result: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise InvalidPair(pair)
        key = key.strip()
        if not key:
            raise InvalidKey(pair)
        result[key] = parse_value(value) if coerce else value
    return result
