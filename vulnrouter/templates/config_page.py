"""Self-contained HTML page for editing routing thresholds."""

from __future__ import annotations

import html

from vulnrouter.routing.severity import Severity
from vulnrouter.routing.store import FindingCategory, RoutingConfiguration

CATEGORY_LABELS = {
    FindingCategory.OS.value: "OS vulnerabilities",
    FindingCategory.APP.value: "Application vulnerabilities",
}

SEVERITY_COLORS = {
    "LOW": "#10b981",
    "MEDIUM": "#f59e0b",
    "HIGH": "#ef4444",
    "CRITICAL": "#dc2626",
}

PAGE_STYLE = """
        * { box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #0f172a;
            color: #e2e8f0;
        }
        .container { max-width: 640px; margin: 0 auto; padding: 24px; }
        h1 { font-size: 18px; font-weight: 600; color: #94a3b8; }
        fieldset {
            background: #1e293b;
            border: 1px solid #334155;
            border-radius: 12px;
            padding: 16px;
            margin-bottom: 16px;
        }
        legend { font-size: 14px; font-weight: 600; color: #94a3b8; }
        label {
            display: block;
            font-size: 11px;
            text-transform: uppercase;
            color: #64748b;
            margin-top: 12px;
        }
        input, select {
            width: 100%;
            padding: 8px;
            margin-top: 4px;
            background: #0f172a;
            color: #e2e8f0;
            border: 1px solid #334155;
            border-radius: 6px;
        }
        .badge {
            display: inline-block;
            padding: 2px 8px;
            border-radius: 9999px;
            font-size: 12px;
            margin-left: 8px;
        }
        .error { background: #7f1d1d; border-radius: 8px; padding: 12px; margin-bottom: 16px; }
        button {
            background: #3b82f6;
            color: white;
            border: none;
            border-radius: 6px;
            padding: 10px 16px;
            cursor: pointer;
        }
"""


def form_field_names(category: str) -> tuple[str, str]:
    """Names of the channel and severity inputs for a category."""
    prefix = category.lower()
    return f"{prefix}_channel", f"{prefix}_severity"


def _severity_options(selected: str) -> str:
    options = []
    for severity in Severity:
        marker = " selected" if severity.value == selected else ""
        options.append(f'<option value="{severity.value}"{marker}>{severity.value}</option>')
    return "\n".join(options)


def _render_category(category: str, config: RoutingConfiguration) -> str:
    rule = config.rule_for(category)
    channel = rule.channel if rule else ""
    min_severity = rule.min_severity if rule else ""
    channel_field, severity_field = form_field_names(category)
    color = SEVERITY_COLORS.get(min_severity, "#6b7280")
    badge_style = f"background: {color}20; color: {color};"
    channel_value = html.escape(channel, quote=True)
    return f"""
        <fieldset>
            <legend>{html.escape(CATEGORY_LABELS.get(category, category))}
                <span class="badge" style="{badge_style}">&ge; {html.escape(min_severity)}</span>
            </legend>
            <label for="{channel_field}">Channel</label>
            <input id="{channel_field}" name="{channel_field}" value="{channel_value}" required>
            <label for="{severity_field}">Minimum severity</label>
            <select id="{severity_field}" name="{severity_field}">
                {_severity_options(min_severity)}
            </select>
        </fieldset>"""


def render_config_html(config: RoutingConfiguration, error: str | None = None) -> str:
    sections = "\n".join(_render_category(category.value, config) for category in FindingCategory)
    error_html = f'<div class="error">{html.escape(error)}</div>' if error else ""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Vulnerability Routing</title>
    <style>{PAGE_STYLE}    </style>
</head>
<body>
    <div class="container">
        <h1>Vulnerability Routing</h1>
        {error_html}
        <form method="post" action="/config">
            {sections}
            <button type="submit">Save</button>
        </form>
    </div>
</body>
</html>"""
