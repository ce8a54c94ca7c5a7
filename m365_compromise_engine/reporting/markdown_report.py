"""
Markdown incident summary — Short triage report rendered via Jinja2.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..scoring.models import AnalysisResult, RiskTier

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "summary.md.j2"

_TIER_ICONS = {
    "Critical": "🔴",
    "High":     "🟠",
    "Medium":   "🟡",
    "Low":      "🟢",
}


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_markdown(
    result: AnalysisResult,
    report_id: str,
    tenant_name: str = "Unknown Tenant",
    top_n: int = 10,
) -> str:
    template = _environment().get_template(TEMPLATE_NAME)
    urgent = [r for r in result.ranked if r.risk_tier in (RiskTier.CRITICAL, RiskTier.HIGH)]
    return template.render(
        report_id=report_id,
        tenant_name=tenant_name,
        generated_utc=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        result=result,
        tier_counts=result.tier_counts(),
        top_subjects=result.ranked[:top_n],
        urgent=urgent,
        tier_icons=_TIER_ICONS,
    )


def export_markdown(
    result: AnalysisResult,
    output_dir: Path,
    report_id: str,
    tenant_name: str = "Unknown Tenant",
) -> Path:
    """
    Generate a short Markdown incident summary suitable for a ticket or chat.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"incident_summary_{report_id}.md"

    content = render_markdown(result, report_id, tenant_name)
    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(content)

    return filepath
