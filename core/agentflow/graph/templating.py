"""Template rendering: {{variable}} expansion against workflow variables."""

import json
import re
from collections.abc import Mapping
from typing import Any

# Matches {{path.to.var}} or {{path.to.var | default}}
_TEMPLATE_RE = re.compile(r"\{\{\s*([\w.\-]+)\s*(?:\|\s*(.+?))?\s*\}\}")


def resolve_path(path: str, variables: Mapping[str, Any]) -> Any:
    """Resolve a dotted path like 'search.results.0.title' against *variables*.

    Returns None when any segment is missing.
    """
    current: Any = variables
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, list | tuple) and part.isdigit():
            idx = int(part)
            current = current[idx] if idx < len(current) else None
        elif isinstance(current, list | tuple) and part in ("length", "len", "count"):
            current = len(current)
        else:
            return None
        if current is None:
            return None
    return current


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict | list | tuple | bool) or value is None:
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Replace every {{path}} placeholder in *template*.

    Unresolvable placeholders with no default are left verbatim so authoring
    mistakes stay visible in the rendered prompt.
    """

    def replacer(match: re.Match) -> str:
        value = resolve_path(match.group(1), variables)
        if value is None:
            default = match.group(2)
            return default.strip().strip("'\"") if default else match.group(0)
        return _to_text(value)

    return _TEMPLATE_RE.sub(replacer, template)


def render_value(value: Any, variables: Mapping[str, Any]) -> Any:
    """Render templates inside any JSON-like value.

    A string that is exactly one placeholder resolves to the raw value, so
    ``{"items": "{{search_results}}"}`` passes a list through unchanged.
    """
    if isinstance(value, str):
        match = _TEMPLATE_RE.fullmatch(value.strip())
        if match:
            resolved = resolve_path(match.group(1), variables)
            if resolved is not None:
                return resolved
        return render_template(value, variables)
    if isinstance(value, Mapping):
        return {k: render_value(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(item, variables) for item in value]
    return value
