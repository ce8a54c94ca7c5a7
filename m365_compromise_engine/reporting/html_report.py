"""
HTML Compromise Report — single-file HTML output.

Generates a self-contained HTML report with inline CSS: per-tier summary
counts, a ranked table of every subject, and an expandable evidence
section for Critical and High subjects only. Critical sections render
expanded, High sections collapsed. Medium and Low subjects appear in the
ranked table without a detail section.
"""

from __future__ import annotations

import hashlib
import html
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..analyzers.base import EvidenceSource, TenantFinding
from ..analyzers.etr_analyzer import SpamIndicator
from ..collectors.normalizer import (
    AppRegistrationRecord,
    AuditRecord,
    DelegationRecord,
    InboxRuleRecord,
    SignInRecord,
)
from ..scoring.models import AnalysisResult, RiskTier, SubjectRiskRecord


# ---------------------------------------------------------------------------
# Colour palette
# ---------------------------------------------------------------------------
_TIER_COLOURS = {
    "critical": {"bg": "#dc2626", "fg": "#fff"},
    "high":     {"bg": "#ea580c", "fg": "#fff"},
    "medium":   {"bg": "#d97706", "fg": "#fff"},
    "low":      {"bg": "#2563eb", "fg": "#fff"},
}

_SOURCE_DISPLAY = {
    EvidenceSource.UNUSUAL_SIGN_IN: "Unusual Sign-ins",
    EvidenceSource.FAILED_SIGN_IN: "Failed Sign-ins",
    EvidenceSource.HIGH_RISK_ADMIN_OP: "High-Risk Admin Operations",
    EvidenceSource.SUSPICIOUS_INBOX_RULE: "Suspicious Inbox Rules",
    EvidenceSource.SUSPICIOUS_DELEGATION: "Suspicious Delegations",
    EvidenceSource.HIGH_RISK_APP_REGISTRATION: "High-Risk App Registrations",
    EvidenceSource.ETR_SPAM_FINDING: "ETR Spam Findings",
}

_SOURCE_LABELS = {
    "sign_ins": "Sign-in logs",
    "admin_audit": "Admin audit logs",
    "inbox_rules": "Inbox rules",
    "delegations": "Mailbox delegations",
    "app_registrations": "App registrations",
    "conditional_access": "Conditional Access policies",
    "message_trace": "Message trace (ETR)",
}

PLACEHOLDER = "N/A"
UNKNOWN = "Unknown"


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def _esc(val: Any) -> str:
    if val is None:
        return ""
    return html.escape(str(val))


def _display(val: Any, placeholder: str = PLACEHOLDER) -> str:
    """Escape a value, substituting the placeholder for blanks."""
    if isinstance(val, (list, tuple)):
        val = ", ".join(str(v) for v in val if v)
    if val is None or str(val).strip() == "":
        return _esc(placeholder)
    return _esc(val)


def _tier_badge(tier: str) -> str:
    c = _TIER_COLOURS.get(tier.lower(), _TIER_COLOURS["low"])
    return (
        f'<span class="badge" style="background:{c["bg"]};color:{c["fg"]}">'
        f'{html.escape(tier.upper())}</span>'
    )


def _anchor(subject: str) -> str:
    # Digest keeps ids unique when subjects differ only in punctuation
    safe = "".join(ch if ch.isalnum() else "-" for ch in subject)
    digest = hashlib.sha1(subject.encode("utf-8")).hexdigest()[:8]
    return f"subject-{safe}-{digest}"


# --- Payload → row mappers, one per evidence payload type ---

def _payload_row(payload: Any) -> dict[str, Any]:
    if isinstance(payload, SignInRecord):
        return {
            "Time": payload.created,
            "IP Address": payload.ip_address,
            "Location": payload.location or UNKNOWN,
            "Application": payload.app_display_name,
            "Result": "Success" if payload.succeeded else (payload.failure_reason or "Failure"),
            "Risk Level": payload.risk_level,
        }
    if isinstance(payload, AuditRecord):
        return {
            "Time": payload.activity_time,
            "Activity": payload.activity,
            "Target": payload.target,
            "Result": payload.result,
        }
    if isinstance(payload, InboxRuleRecord):
        return {
            "Rule": payload.rule_name,
            "Enabled": "Yes" if payload.enabled else "No",
            "Forward / Redirect": "; ".join(
                v for v in (payload.forward_to, payload.forward_as_attachment_to, payload.redirect_to) if v
            ),
            "Move To Folder": payload.move_to_folder,
            "Deletes": "Yes" if payload.delete_message else "No",
        }
    if isinstance(payload, DelegationRecord):
        return {
            "Delegate": payload.delegate,
            "Access Rights": payload.access_rights,
            "Type": payload.delegation_type,
        }
    if isinstance(payload, AppRegistrationRecord):
        return {
            "Application": payload.display_name,
            "App ID": payload.app_id,
            "Publisher Domain": payload.publisher_domain,
            "Homepage": payload.homepage,
        }
    if isinstance(payload, SpamIndicator):
        return {
            "Risk Type": payload.risk_type,
            "Messages": payload.message_count,
            "Sample Recipients": payload.recipients,
            "Sample Subjects": payload.subjects,
        }
    return {}


def _evidence_table(items: list) -> str:
    rows = []
    columns: list[str] = []
    for item in items:
        row = _payload_row(item.payload)
        for col in row:
            if col not in columns:
                columns.append(col)
        rows.append((item, row))

    header = "".join(f"<th>{_esc(c)}</th>" for c in ["Points", "Reason", *columns])
    body = []
    for item, row in rows:
        cells = "".join(f"<td>{_display(row.get(c))}</td>" for c in columns)
        body.append(
            f"<tr><td class='pts'>+{item.points}</td><td>{_display(item.reason)}</td>{cells}</tr>"
        )
    return (
        f"<table class='ev-table'><thead><tr>{header}</tr></thead>"
        f"<tbody>{''.join(body)}</tbody></table>"
    )


def _subject_detail(record: SubjectRiskRecord) -> str:
    """Expandable evidence block; Critical subjects render open."""
    tier = record.risk_tier
    open_attr = " open" if tier is RiskTier.CRITICAL else ""
    sections = []
    for source, items in record.evidence.items():
        sections.append(
            f"<h4>{_esc(_SOURCE_DISPLAY.get(source, source.value))} ({len(items)})</h4>"
            f"{_evidence_table(items)}"
        )
    return (
        f'<details class="subject-details tier-{tier.value.lower()}" id="{_anchor(record.subject)}"{open_attr}>'
        f'<summary>{_tier_badge(tier.value)} {_esc(record.subject)} '
        f'&middot; score {record.risk_score}</summary>'
        f'<div class="detail-body">{"".join(sections)}</div>'
        f'</details>'
    )


def _spam_rows(indicators: list[SpamIndicator]) -> str:
    rows = []
    for i in indicators:
        rows.append(f"""
          <tr>
            <td>{_tier_badge(i.risk_level)}</td>
            <td>{_display(i.sender)}</td>
            <td>{_display(i.risk_type)}</td>
            <td class="num">{i.message_count}</td>
            <td>{_display(i.description)}</td>
            <td class="ev-small">{_display(i.subjects)}</td>
            <td class="num">{i.risk_score}</td>
          </tr>""")
    return "\n".join(rows)


def _tenant_rows(findings: list[TenantFinding]) -> str:
    rows = []
    for f in findings:
        rows.append(f"""
          <tr>
            <td>{_tier_badge(f.risk_level)}</td>
            <td>{_display(f.category)}</td>
            <td>{_display(f.name)}</td>
            <td>{_display("; ".join(f.reasons))}</td>
          </tr>""")
    return "\n".join(rows)


# ---------------------------------------------------------------------------
# Main renderer
# ---------------------------------------------------------------------------

def render_html(
    result: AnalysisResult,
    report_id: str,
    tenant_name: str,
    generated_at: str,
) -> str:
    """Build the full HTML string."""
    counts = result.tier_counts()

    tier_cards = "\n".join(
        f"""
        <div class="tier-card" style="border-top:4px solid {_TIER_COLOURS[t.lower()]['bg']}">
          <div class="tier-count">{counts[t]}</div>
          <div class="tier-name">{t}</div>
        </div>"""
        for t in ("Critical", "High", "Medium", "Low")
    )

    sources_html = "".join(
        f'<li class="src-ok">{_esc(_SOURCE_LABELS.get(s, s))}</li>' for s in result.sources_present
    ) + "".join(
        f'<li class="src-missing">{_esc(_SOURCE_LABELS.get(s, s))} (not provided)</li>'
        for s in result.sources_missing
    )

    ranked_rows = []
    for rank, record in enumerate(result.ranked, 1):
        tier = record.risk_tier.value
        name = _esc(record.subject)
        if record.risk_tier in (RiskTier.CRITICAL, RiskTier.HIGH):
            name = f'<a href="#{_anchor(record.subject)}">{name}</a>'
        counts_cells = "".join(
            f'<td class="num">{record.count(source)}</td>' for source in EvidenceSource
        )
        ranked_rows.append(f"""
          <tr class="tier-row tier-{tier.lower()}">
            <td class="num">{rank}</td>
            <td>{name}</td>
            <td class="num"><strong>{record.risk_score}</strong></td>
            <td>{_tier_badge(tier)}</td>
            {counts_cells}
          </tr>""")
    ranked_html = "\n".join(ranked_rows) or (
        f'<tr><td colspan="{4 + len(EvidenceSource)}" class="muted">No subjects with risk evidence.</td></tr>'
    )
    count_headers = "".join(f"<th>{_esc(s.value)}</th>" for s in EvidenceSource)

    details = [
        _subject_detail(r) for r in result.ranked
        if r.risk_tier in (RiskTier.CRITICAL, RiskTier.HIGH)
    ]
    details_html = "\n".join(details) or '<p class="muted">No Critical or High risk subjects.</p>'

    spam_html = ""
    if result.spam_indicators:
        spam_html = f"""
  <section class="report-section">
    <h2>ETR Spam Analysis ({len(result.spam_indicators)} indicators)</h2>
    <table class="findings-table">
      <thead><tr><th>Risk</th><th>Sender</th><th>Type</th><th>Messages</th><th>Description</th><th>Sample Subjects</th><th>Score</th></tr></thead>
      <tbody>{_spam_rows(result.spam_indicators)}</tbody>
    </table>
  </section>"""

    tenant_html = ""
    if result.tenant_findings:
        tenant_html = f"""
  <section class="report-section">
    <h2>Tenant-Wide Findings</h2>
    <table class="findings-table">
      <thead><tr><th>Risk</th><th>Category</th><th>Name</th><th>Reasons</th></tr></thead>
      <tbody>{_tenant_rows(result.tenant_findings)}</tbody>
    </table>
  </section>"""

    risky_ips = ", ".join(_esc(ip) for ip in result.risky_ips) or _esc(PLACEHOLDER)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>M365 Compromise Detection Report — {_esc(tenant_name)}</title>
<style>
*, *::before, *::after {{ box-sizing: border-box; margin: 0; padding: 0; }}
html {{ font-size: 15px; }}
body {{
  font-family: "Segoe UI", -apple-system, BlinkMacSystemFont, Roboto, "Helvetica Neue", sans-serif;
  background: #f8fafc; color: #1e293b; line-height: 1.55;
}}
a {{ color: #2563eb; text-decoration: none; }}
.page {{ max-width: 1200px; margin: 0 auto; padding: 2rem 1.5rem; }}
.report-header {{
  background: linear-gradient(135deg, #0f172a 0%, #1e3a5f 100%);
  color: #f1f5f9; padding: 2rem 2.5rem; border-radius: 12px;
  margin-bottom: 2rem; display: flex; justify-content: space-between; align-items: center; flex-wrap: wrap; gap: 1rem;
}}
.report-header h1 {{ font-size: 1.6rem; font-weight: 700; margin-bottom: .3rem; }}
.report-header .subtitle {{ font-size: .85rem; opacity: .75; }}
.scan-meta {{ font-size: .78rem; opacity: .65; line-height: 1.7; text-align: right; }}
.tier-grid {{ display: grid; grid-template-columns: repeat(4, 1fr); gap: 1rem; margin-bottom: 2rem; }}
.tier-card {{ background: #fff; border-radius: 10px; padding: 1.2rem 1.4rem; box-shadow: 0 1px 3px rgba(0,0,0,.06); }}
.tier-count {{ font-size: 2rem; font-weight: 800; line-height: 1.1; }}
.tier-name {{ font-size: .85rem; color: #64748b; font-weight: 600; }}
.report-section {{ margin-bottom: 2rem; }}
.report-section h2 {{
  font-size: 1.15rem; font-weight: 700; margin-bottom: 1rem;
  padding-bottom: .5rem; border-bottom: 2px solid #e2e8f0;
}}
.sources li {{ list-style: none; font-size: .85rem; padding: .1rem 0; }}
.src-ok::before {{ content: "\\2713  "; color: #16a34a; font-weight: 700; }}
.src-missing {{ color: #94a3b8; }}
.src-missing::before {{ content: "\\2717  "; color: #dc2626; font-weight: 700; }}
.findings-table {{ width: 100%; border-collapse: separate; border-spacing: 0; background: #fff; }}
.findings-table th {{
  text-align: left; font-size: .72rem; text-transform: uppercase;
  letter-spacing: .04em; color: #64748b; padding: .6rem .7rem;
  background: #f8fafc; border-bottom: 2px solid #e2e8f0;
}}
.findings-table td {{ padding: .55rem .7rem; vertical-align: top; border-bottom: 1px solid #f1f5f9; font-size: .85rem; }}
.num {{ text-align: right; font-variant-numeric: tabular-nums; }}
.subject-details {{ background: #fff; border-radius: 8px; padding: 1rem 1.2rem; margin-bottom: .7rem; box-shadow: 0 1px 2px rgba(0,0,0,.04); }}
.subject-details.tier-critical {{ border-left: 4px solid #dc2626; }}
.subject-details.tier-high {{ border-left: 4px solid #ea580c; }}
.subject-details summary {{ cursor: pointer; font-weight: 600; font-size: .95rem; }}
.detail-body h4 {{ font-size: .82rem; margin: .9rem 0 .3rem; color: #475569; text-transform: uppercase; letter-spacing: .03em; }}
.ev-table {{ width: 100%; border-collapse: collapse; font-size: .78rem; }}
.ev-table th {{
  text-align: left; font-size: .7rem; text-transform: uppercase; color: #64748b;
  padding: .35rem .5rem; background: #eef2f7; border-bottom: 1px solid #e2e8f0; white-space: nowrap;
}}
.ev-table td {{ padding: .35rem .5rem; border-bottom: 1px solid #f1f5f9; color: #334155; vertical-align: top; word-break: break-word; }}
.ev-table td.pts {{ color: #dc2626; font-weight: 600; white-space: nowrap; }}
.ev-small {{ font-size: .75rem; color: #64748b; max-width: 320px; }}
.badge {{
  display: inline-block; font-size: .7rem; font-weight: 700; letter-spacing: .03em;
  padding: 3px 8px; border-radius: 4px; text-transform: uppercase;
}}
.muted {{ color: #94a3b8; font-size: .88rem; font-style: italic; }}
.footer {{ text-align: center; font-size: .75rem; color: #94a3b8; margin-top: 3rem; padding-top: 1.5rem; border-top: 1px solid #e2e8f0; }}
@media print {{
  body {{ background: #fff; }}
  .page {{ max-width: 100%; padding: 1rem; }}
  .subject-details {{ break-inside: avoid; }}
}}
</style>
</head>
<body>
<div class="page">

  <div class="report-header">
    <div>
      <h1>M365 Compromise Detection Report</h1>
      <div class="subtitle">Risk-ranked accounts for {_esc(tenant_name)}</div>
    </div>
    <div class="scan-meta">
      Report ID: {_esc(report_id)}<br>
      Generated: {_esc(generated_at)}<br>
      Subjects scored: {len(result.ranked)}
    </div>
  </div>

  <div class="tier-grid">
    {tier_cards}
  </div>

  <section class="report-section">
    <h2>Data Sources</h2>
    <ul class="sources">{sources_html}</ul>
    <p style="margin-top:.6rem;font-size:.85rem;color:#64748b">Risky IPs correlated: {risky_ips}</p>
  </section>

  <section class="report-section">
    <h2>Ranked Subjects</h2>
    <table class="findings-table">
      <thead>
        <tr><th>#</th><th>Subject</th><th>Score</th><th>Tier</th>{count_headers}</tr>
      </thead>
      <tbody>
        {ranked_html}
      </tbody>
    </table>
  </section>

  <section class="report-section">
    <h2>Critical &amp; High Risk Details</h2>
    {details_html}
  </section>
{spam_html}
{tenant_html}

  <div class="footer">
    M365 Compromise Detection Engine &middot; Offline Analysis &middot; {_esc(generated_at)}
  </div>

</div>
</body>
</html>"""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def export_html(
    result: AnalysisResult,
    output_dir: Path,
    report_id: str,
    tenant_name: str = "Unknown Tenant",
) -> Path:
    """
    Generate a self-contained HTML compromise report.

    Returns the Path to the written file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    html_content = render_html(
        result=result,
        report_id=report_id,
        tenant_name=tenant_name,
        generated_at=generated_at,
    )

    filepath = output_dir / f"compromise_report_{report_id}.html"
    filepath.write_text(html_content, encoding="utf-8")

    return filepath
