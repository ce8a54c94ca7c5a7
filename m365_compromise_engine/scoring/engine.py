"""
Risk Aggregation Engine — Merges per-source evidence into a ranked subject list.

Scoring model:
  - Every evidence item adds its fixed point value to exactly one subject.
  - Subjects are keyed by their trimmed identifier (case-sensitive).
  - Risk tier is derived from the score: Critical ≥ 50, High ≥ 30, Medium ≥ 15.
  - Ranking is by descending score, then subject identifier ascending.
  - Sources whose input is missing are skipped; no sources at all is an error.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Iterable, Optional

from ..analyzers import (
    AdminAuditAnalyzer,
    AppRegistrationAnalyzer,
    ConditionalAccessAnalyzer,
    DelegationAnalyzer,
    EtrSpamAnalyzer,
    InboxRuleAnalyzer,
    SignInAnalyzer,
)
from ..analyzers.base import RiskContribution, TenantFinding
from ..collectors.normalizer import SourceType, normalize_records
from ..config import DetectionConfig
from .models import AnalysisResult, SubjectRiskRecord

logger = logging.getLogger("m365_compromise_engine.scoring")

# Analysis order; sign-ins run first so their risky IPs can feed the ETR pass
ANALYZER_FOR_SOURCE = [
    (SourceType.SIGN_IN, SignInAnalyzer),
    (SourceType.ADMIN_AUDIT, AdminAuditAnalyzer),
    (SourceType.INBOX_RULE, InboxRuleAnalyzer),
    (SourceType.DELEGATION, DelegationAnalyzer),
    (SourceType.APP_REGISTRATION, AppRegistrationAnalyzer),
    (SourceType.CONDITIONAL_ACCESS, ConditionalAccessAnalyzer),
    (SourceType.MESSAGE_TRACE, EtrSpamAnalyzer),
]


class NoDataError(Exception):
    """Raised when no data source is available to analyze."""

    def __init__(self, message: str = "No data to analyze"):
        super().__init__(message)


def aggregate(
    contributions: Iterable[RiskContribution],
    sources_present: Iterable[str],
    sources_missing: Iterable[str] = (),
    spam_indicators: Optional[list] = None,
    tenant_findings: Optional[list[TenantFinding]] = None,
    risky_ips: Optional[list[str]] = None,
) -> AnalysisResult:
    """
    Fold contributions into subject risk records and rank them.

    Args:
        contributions: RiskContribution items from all analyzers, in
            processing order.
        sources_present: Names of the sources that contributed data.
        sources_missing: Names of the sources whose input was absent.

    Returns:
        AnalysisResult with the ranked subject list.
    """
    present = list(sources_present)
    if not present:
        raise NoDataError()

    result = AnalysisResult(
        spam_indicators=list(spam_indicators or []),
        tenant_findings=list(tenant_findings or []),
        risky_ips=list(risky_ips or []),
        sources_present=present,
        sources_missing=list(sources_missing),
    )

    subjects: dict[str, SubjectRiskRecord] = {}
    for index, contribution in enumerate(contributions):
        try:
            identifier = (contribution.subject or "").strip()
            if not identifier:
                result.skipped_contributions += 1
                logger.warning(
                    f"Contribution {index} ({contribution.evidence.source.value}) has no subject; skipped"
                )
                continue
            record = subjects.get(identifier)
            if record is None:
                record = subjects[identifier] = SubjectRiskRecord(subject=identifier)
            record.add(contribution.evidence)
        except Exception as e:
            result.skipped_contributions += 1
            logger.warning(f"Skipping contribution {index}: {type(e).__name__}: {e}")

    result.ranked = sorted(subjects.values(), key=lambda r: (-r.risk_score, r.subject))
    logger.info(
        f"Aggregated {len(result.ranked)} subjects from {len(present)} sources "
        f"({', '.join(present)})"
    )
    return result


def _as_records(items: Iterable, source: SourceType) -> list:
    items = list(items)
    if items and isinstance(items[0], Mapping):
        return normalize_records(items, source)
    return items


def compute_risk(
    sources: Mapping[SourceType, Optional[Iterable]],
    config: Optional[DetectionConfig] = None,
    risky_ips: Iterable[str] = (),
) -> AnalysisResult:
    """
    Run every analyzer whose source is available and aggregate the results.

    Args:
        sources: Mapping of source type to its records (normalized records
            or raw rows). A missing key or a None value marks the source
            as unavailable.
        config: Detection settings shared by all analyzers.
        risky_ips: Extra IPs to correlate against message trace, in
            addition to those flagged by sign-in analysis.

    Returns:
        AnalysisResult with ranked subjects, spam indicators and tenant findings.
    """
    config = config or DetectionConfig()
    contributions: list[RiskContribution] = []
    tenant_findings: list[TenantFinding] = []
    present: list[str] = []
    missing: list[str] = []
    flagged_ips: list[str] = []
    for ip in risky_ips:
        ip = ip.strip()
        if ip and ip not in flagged_ips:
            flagged_ips.append(ip)
    spam_indicators: list = []

    for source, analyzer_cls in ANALYZER_FOR_SOURCE:
        records = sources.get(source)
        if records is None:
            missing.append(source.value)
            logger.info(f"Source {source.value} unavailable; skipping")
            continue
        present.append(source.value)
        records = _as_records(records, source)

        if analyzer_cls is EtrSpamAnalyzer:
            analyzer = EtrSpamAnalyzer(config, risky_ips=flagged_ips)
        else:
            analyzer = analyzer_cls(config)

        contributions.extend(analyzer.analyze(records))
        tenant_findings.extend(analyzer.tenant_findings)

        if isinstance(analyzer, SignInAnalyzer):
            flagged_ips.extend(ip for ip in analyzer.risky_ips if ip not in flagged_ips)
        if isinstance(analyzer, EtrSpamAnalyzer):
            spam_indicators = analyzer.indicators

    return aggregate(
        contributions,
        sources_present=present,
        sources_missing=missing,
        spam_indicators=spam_indicators,
        tenant_findings=tenant_findings,
        risky_ips=flagged_ips,
    )
