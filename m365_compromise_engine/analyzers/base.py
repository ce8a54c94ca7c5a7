"""
Base analyzer class — Abstract interface for all risk extractors.
Defines the evidence data model and the extractor contract.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable

from ..config import DetectionConfig

logger = logging.getLogger("m365_compromise_engine.analyzers")


class EvidenceSource(str, enum.Enum):
    """Closed set of evidence tags a subject's risk can come from."""
    UNUSUAL_SIGN_IN = "UnusualSignIn"
    FAILED_SIGN_IN = "FailedSignIn"
    HIGH_RISK_ADMIN_OP = "HighRiskAdminOp"
    SUSPICIOUS_INBOX_RULE = "SuspiciousInboxRule"
    SUSPICIOUS_DELEGATION = "SuspiciousDelegation"
    HIGH_RISK_APP_REGISTRATION = "HighRiskAppRegistration"
    ETR_SPAM_FINDING = "ETRSpamFinding"


@dataclass(frozen=True)
class EvidenceItem:
    """One scored fact attached to a subject."""
    source: EvidenceSource
    points: int
    reason: str = ""
    payload: Any = None              # Normalized record or spam indicator

    def to_dict(self) -> dict:
        payload = self.payload
        if hasattr(payload, "to_dict"):
            payload = payload.to_dict()
        elif hasattr(payload, "__dataclass_fields__"):
            payload = {k: getattr(payload, k) for k in payload.__dataclass_fields__}
        return {
            "source": self.source.value,
            "points": self.points,
            "reason": self.reason,
            "payload": payload,
        }


@dataclass(frozen=True)
class RiskContribution:
    """An evidence item together with the subject it is attributed to."""
    subject: str
    evidence: EvidenceItem


@dataclass
class TenantFinding:
    """Tenant-wide observation that carries no subject score."""
    category: str                    # "ConditionalAccess", "AppRegistration"
    name: str
    risk_level: str                  # "High", "Medium", "Low"
    reasons: list[str] = field(default_factory=list)
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "name": self.name,
            "risk_level": self.risk_level,
            "reasons": list(self.reasons),
            "detail": dict(self.detail),
        }


class BaseAnalyzer(ABC):
    """
    Abstract base class for all risk extractors.
    Extractors receive normalized records and produce risk contributions
    (and, for tenant-level sources, tenant findings).

    Subclasses that judge records one at a time derive from RecordAnalyzer.
    """

    name: str = "base"
    description: str = "Base analyzer"

    def __init__(self, config: DetectionConfig | None = None):
        self.config = config or DetectionConfig()
        self.contributions: list[RiskContribution] = []
        self.tenant_findings: list[TenantFinding] = []
        self.skipped = 0

    def analyze(self, records: Iterable) -> list[RiskContribution]:
        """
        Execute analysis and return contributions.
        Subclasses implement _analyze() over the whole record set.
        """
        self.contributions = []
        self.tenant_findings = []
        self.skipped = 0

        self._analyze(list(records or []))

        if self.skipped:
            logger.warning(f"[{self.name}] Skipped {self.skipped} malformed records")
        logger.info(
            f"[{self.name}] Analysis complete — {len(self.contributions)} contributions, "
            f"{len(self.tenant_findings)} tenant findings"
        )
        return self.contributions

    @abstractmethod
    def _analyze(self, records: list):
        """Analyze all records. Add evidence via self.add_evidence()."""
        pass

    def add_evidence(
        self,
        subject: str,
        source: EvidenceSource,
        points: int,
        reason: str = "",
        payload: Any = None,
    ) -> RiskContribution:
        """Create and register a new contribution."""
        contribution = RiskContribution(
            subject=subject,
            evidence=EvidenceItem(source=source, points=points, reason=reason, payload=payload),
        )
        self.contributions.append(contribution)
        return contribution

    def add_tenant_finding(self, **kwargs) -> TenantFinding:
        finding = TenantFinding(**kwargs)
        self.tenant_findings.append(finding)
        return finding


class RecordAnalyzer(BaseAnalyzer):
    """
    Analyzer that judges each record on its own.
    A record that raises in _evaluate() is counted as skipped.
    """

    def _analyze(self, records: list):
        for index, record in enumerate(records):
            try:
                self._evaluate(record)
            except Exception as e:
                self.skipped += 1
                logger.warning(f"[{self.name}] Skipping record {index}: {type(e).__name__}: {e}")

    @abstractmethod
    def _evaluate(self, record):
        """Evaluate one record. Add evidence via self.add_evidence()."""
        pass


def email_domain(address: str) -> str:
    """Lower-cased domain part of an address, or "" if it has none."""
    address = (address or "").strip()
    if "@" not in address:
        return ""
    return address.rsplit("@", 1)[1].strip().strip(">]").lower()
