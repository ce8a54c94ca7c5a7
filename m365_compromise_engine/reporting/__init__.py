"""Reporting package — multi-format output generation."""

from .json_export import export_json
from .csv_export import export_csv
from .markdown_report import export_markdown, render_markdown
from .html_report import export_html, render_html

__all__ = [
    "export_json",
    "export_csv",
    "export_markdown",
    "render_markdown",
    "export_html",
    "render_html",
]
