# ============================================================================
# HEALTH RESPONSE RENDERING
# ============================================================================
# STATUS: Infrastructure - Response serialization
# PURPOSE: JSON body, or an HTML list page for browsers
# ============================================================================
"""
Health Response Rendering

JSON is UTF-8 with keys in payload order (the aggregator sorts them);
pretty-printing is optional. The HTML fallback lists every top-level key
with nested sections and error maps rendered as sub-lists.

Every response carries no-cache headers; health results must never be
served from an intermediary cache.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict

from jinja2 import Environment

JSON_MEDIA_TYPE = "application/json"
HTML_MEDIA_TYPE = "text/html"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, must-revalidate, max-age=0, no-store, private",
    "Expires": "Wed, 11 Jan 1984 05:00:00 GMT",
    "Pragma": "no-cache",
}

HTML_TEMPLATE = """\
{%- macro render_value(value) -%}
{%- if value is mapping -%}
<ul>
{%- for key, item in value.items() %}
<li><strong>{{ key }}</strong>: {{ render_value(item) }}</li>
{%- endfor %}
</ul>
{%- elif value is none -%}
null
{%- elif value is sameas true -%}
true
{%- elif value is sameas false -%}
false
{%- else -%}
{{ value }}
{%- endif -%}
{%- endmacro -%}
<html lang="en">
<head>
<title>Status: {{ summary }}</title>
</head>
<ul>
{%- for check, value in checks.items() %}
<li><strong>{{ check }}</strong>: {{ render_value(value) }}</li>
{%- endfor %}
</ul>
</html>
"""

_environment = Environment(autoescape=True)
_template = _environment.from_string(HTML_TEMPLATE)


@dataclass
class RenderedResponse:
    """Transport-neutral response; the router hands it to the framework."""
    status_code: int
    body: str
    media_type: str
    headers: Dict[str, str] = field(default_factory=lambda: dict(NO_CACHE_HEADERS))


def render_json(payload: Dict[str, Any], pretty: bool = True) -> str:
    return json.dumps(
        payload,
        indent=4 if pretty else None,
        ensure_ascii=False,
        default=str,
    )


def render_html(payload: Dict[str, Any], summary: str) -> str:
    return _template.render(checks=payload, summary=summary)


__all__ = [
    "RenderedResponse",
    "render_json",
    "render_html",
    "NO_CACHE_HEADERS",
    "JSON_MEDIA_TYPE",
    "HTML_MEDIA_TYPE",
]
