"""{{placeholder}} rendering for command templates.

Syntax: ``{{ path }}`` or ``{{ path | fallback }}`` where path is dot-separated
segments of ``[a-zA-Z0-9_.-]``. The fallback is literal text up to the closing
braces.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from opsctl.models import RenderResult

PLACEHOLDER_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_.-]+)\s*(?:\|(.*?))?\s*\}\}")


class _Absent:
    """Marker for a path that does not resolve in the context."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def lookup(context: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through nested mappings; return ABSENT when it does not resolve."""
    current: Any = context
    for segment in path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return ABSENT
        current = current[segment]
    return current


def is_blank(value: Any) -> bool:
    # Only missing, None and "" count as absent here; 0, False and [] are real values.
    return value is ABSENT or value is None or (isinstance(value, str) and value == "")


def stringify(value: Any) -> str:
    if value is None or value is ABSENT:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify(v) for v in value)
    if isinstance(value, Mapping):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


def extract_placeholders(text: str) -> list[str]:
    """Distinct placeholder paths in first-seen order."""
    return list(dict.fromkeys(m.group(1) for m in PLACEHOLDER_RE.finditer(text)))


def render_template(template: str, context: Mapping[str, Any]) -> RenderResult:
    missing: dict[str, None] = {}
    used: dict[str, None] = {}

    def _substitute(match: re.Match[str]) -> str:
        path = match.group(1)
        used.setdefault(path)
        fallback = match.group(2)
        value = lookup(context, path)
        if is_blank(value):
            if fallback is not None:
                return fallback.strip()
            missing.setdefault(path)
            return ""
        return stringify(value)

    text = PLACEHOLDER_RE.sub(_substitute, template)
    return RenderResult(text=text, missing_required=list(missing), placeholders_used=list(used))
