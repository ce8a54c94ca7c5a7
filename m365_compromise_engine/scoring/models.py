"""
Scoring data models — Defines structured types for the risk aggregator output.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from ..analyzers.base import EvidenceItem, EvidenceSource, TenantFinding
from ..config import RISK_TIER_THRESHOLDS


class RiskTier(str, enum.Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def from_score(cls, score: int) -> "RiskTier":
        for threshold, label in RISK_TIER_THRESHOLDS:
            if score >= threshold:
                return cls(label)
        return cls.LOW


@dataclass
class SubjectRiskRecord:
    """
    A subject plus its accumulated evidence, one ordered list per source tag.
    Score and tier are always derived from the evidence, never stored.
    """
    subject: str
    evidence: dict[EvidenceSource, list[EvidenceItem]] = field(default_factory=dict)

    def add(self, item: EvidenceItem):
        self.evidence.setdefault(item.source, []).append(item)

    @property
    def risk_score(self) -> int:
        return sum(item.points for items in self.evidence.values() for item in items)

    @property
    def risk_tier(self) -> RiskTier:
        return RiskTier.from_score(self.risk_score)

    @property
    def evidence_count(self) -> int:
        return sum(len(items) for items in self.evidence.values())

    def items(self, source: EvidenceSource) -> list[EvidenceItem]:
        return list(self.evidence.get(source, []))

    def count(self, source: EvidenceSource) -> int:
        return len(self.evidence.get(source, []))

    def all_items(self) -> list[EvidenceItem]:
        return [item for items in self.evidence.values() for item in items]

    def to_dict(self) -> dict:
        return {
            "subject": self.subject,
            "risk_score": self.risk_score,
            "risk_tier": self.risk_tier.value,
            "evidence_counts": {
                source.value: self.count(source) for source in EvidenceSource
            },
            "evidence": {
                source.value: [item.to_dict() for item in items]
                for source, items in self.evidence.items()
            },
        }


@dataclass
class AnalysisResult:
    """Complete aggregation result for one analysis run."""
    ranked: list[SubjectRiskRecord] = field(default_factory=list)
    spam_indicators: list[Any] = field(default_factory=list)
    tenant_findings: list[TenantFinding] = field(default_factory=list)
    risky_ips: list[str] = field(default_factory=list)
    sources_present: list[str] = field(default_factory=list)
    sources_missing: list[str] = field(default_factory=list)
    skipped_contributions: int = 0

    def tier_counts(self) -> dict[str, int]:
        counts = {tier.value: 0 for tier in RiskTier}
        for record in self.ranked:
            counts[record.risk_tier.value] += 1
        return counts

    def subject(self, identifier: str) -> SubjectRiskRecord | None:
        for record in self.ranked:
            if record.subject == identifier:
                return record
        return None

    def to_dict(self) -> dict:
        return {
            "tier_counts": self.tier_counts(),
            "sources_present": list(self.sources_present),
            "sources_missing": list(self.sources_missing),
            "risky_ips": list(self.risky_ips),
            "subjects": [r.to_dict() for r in self.ranked],
            "spam_indicators": [i.to_dict() for i in self.spam_indicators],
            "tenant_findings": [f.to_dict() for f in self.tenant_findings],
            "skipped_contributions": self.skipped_contributions,
        }
