"""Static HTML rendering of report sections with per-cell status classes."""

from collections.abc import Callable, Sequence
from datetime import datetime
import html

from healthcheck.clock import format_timestamp
from healthcheck.normalizer import PERPETUAL
from healthcheck.schemas import ReportSection


SUCCESS = "success"
WARNING = "warning"
ERROR = "error"

StyleRule = Callable[[str, object], str | None]

_STATUS_CLASSES = {
    "Valid": SUCCESS,
    "Success": SUCCESS,
    "Warning": WARNING,
    "Failed": ERROR,
    "Invalid": ERROR,
    "Expired": ERROR,
}

_STYLESHEET = """
body { font-family: Segoe UI, Arial, sans-serif; margin: 24px; color: #222; }
header { border-bottom: 2px solid #005f4b; margin-bottom: 16px; }
h1 { color: #005f4b; margin-bottom: 4px; }
h2 { color: #005f4b; margin-top: 28px; }
.banner { font-weight: bold; margin: 2px 0; }
.generated { color: #666; margin: 2px 0 12px 0; }
table { border-collapse: collapse; width: 100%; font-size: 13px; }
th { background: #005f4b; color: #fff; text-align: left; padding: 6px; }
td { border: 1px solid #ddd; padding: 5px; }
tr:nth-child(even) td { background: #f6f6f6; }
td.success { background: #d4edda; color: #155724; }
td.warning { background: #fff3cd; color: #856404; }
td.error { background: #f8d7da; color: #721c24; }
""".strip()


def _is_true(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.strip().lower() == "true"


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def status_rule(column: str, value: object) -> str | None:
    if column not in {"LicenseStatus", "LastResult"}:
        return None
    return _STATUS_CLASSES.get(str(value).strip())


def days_remaining_rule(column: str, value: object) -> str | None:
    if column != "DaysRemaining" or value == PERPETUAL:
        return None
    days = _as_float(value)
    if days is None:
        return None
    if days < 30:
        return ERROR
    if days < 60:
        return WARNING
    return None


def free_percentage_rule(column: str, value: object) -> str | None:
    if column != "FreePercentage":
        return None
    percent = _as_float(value)
    if percent is None:
        return None
    if percent < 10:
        return ERROR
    if percent < 20:
        return WARNING
    return None


def installed_rule(column: str, value: object) -> str | None:
    if column != "Installed":
        return None
    return SUCCESS if _is_true(value) else ERROR


def availability_rule(column: str, value: object) -> str | None:
    if column not in {"IsUnavailable", "IsDisabled"}:
        return None
    return ERROR if _is_true(value) else None


DEFAULT_STYLE_RULES: tuple[StyleRule, ...] = (
    status_rule,
    days_remaining_rule,
    free_percentage_rule,
    installed_rule,
    availability_rule,
)


def style_for(column: str, value: object, style_rules: Sequence[StyleRule]) -> str | None:
    for rule in style_rules:
        css_class = rule(column, value)
        if css_class is not None:
            return css_class
    return None


def _render_cell(column: str, value: object, style_rules: Sequence[StyleRule]) -> str:
    css_class = style_for(column, value, style_rules)
    text = html.escape(str(value))
    if css_class is None:
        return f"<td>{text}</td>"
    return f'<td class="{css_class}">{text}</td>'


def _render_section(section: ReportSection, style_rules: Sequence[StyleRule]) -> str:
    header = "".join(f"<th>{html.escape(column)}</th>" for column in section.columns)
    body = []
    for row in section.rows:
        cells = "".join(_render_cell(column, row.get(column), style_rules) for column in section.columns)
        body.append(f"<tr>{cells}</tr>")

    return (
        f'<section id="{html.escape(section.key)}">\n'
        f"<h2>{html.escape(section.title)}</h2>\n"
        f"<table>\n<thead><tr>{header}</tr></thead>\n"
        f"<tbody>\n" + "\n".join(body) + "\n</tbody>\n</table>\n</section>"
    )


def render_html(
    sections: Sequence[ReportSection],
    style_rules: Sequence[StyleRule] = DEFAULT_STYLE_RULES,
    *,
    host_name: str,
    generated_at: datetime,
    title: str = "Backup Health Check Report",
) -> str:
    """Compose the report document; sections without rows are left out."""
    rendered = [_render_section(section, style_rules) for section in sections if section.rows]

    return "\n".join(
        [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8">',
            f"<title>{html.escape(title)}</title>",
            f"<style>\n{_STYLESHEET}\n</style>",
            "</head>",
            "<body>",
            "<header>",
            f"<h1>{html.escape(title)}</h1>",
            f'<p class="banner">Backup server: {html.escape(host_name)}</p>',
            f'<p class="generated">Generated: {format_timestamp(generated_at)} UTC</p>',
            "</header>",
            *rendered,
            "</body>",
            "</html>",
            "",
        ]
    )
