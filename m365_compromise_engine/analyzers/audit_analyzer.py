"""
Admin Audit Analyzer
Classifies directory audit operations by activity name and scores the
high-risk ones (permission grants, role membership changes) against the
initiating account.
"""

from __future__ import annotations

import logging
import re

from .base import RecordAnalyzer, EvidenceSource
from ..collectors.normalizer import AuditRecord
from ..config import HIGH_RISK_ADMIN_OP_POINTS

logger = logging.getLogger("m365_compromise_engine.analyzers.audit")

HIGH_RISK_OPERATIONS = [
    re.compile(r"\b(add|remove)\b.*permission", re.IGNORECASE),
    re.compile(r"\b(add|remove)\b.*role.*member", re.IGNORECASE),
    re.compile(r"\b(add|remove)\b.*member.*role", re.IGNORECASE),
]

MEDIUM_RISK_OPERATIONS = [
    re.compile(r"reset.*password", re.IGNORECASE),
    re.compile(r"update user", re.IGNORECASE),
    re.compile(r"consent to application", re.IGNORECASE),
    re.compile(r"update application", re.IGNORECASE),
    re.compile(r"add service principal credentials", re.IGNORECASE),
    re.compile(r"set-?mailbox", re.IGNORECASE),
    re.compile(r"update (conditional access )?policy", re.IGNORECASE),
]


def classify_operation(activity: str) -> str:
    """Return "High", "Medium" or "Low" for an audit activity name."""
    if any(p.search(activity) for p in HIGH_RISK_OPERATIONS):
        return "High"
    if any(p.search(activity) for p in MEDIUM_RISK_OPERATIONS):
        return "Medium"
    return "Low"


class AdminAuditAnalyzer(RecordAnalyzer):
    name = "audit_analyzer"
    description = "Admin audit analysis: permission and role membership changes"

    def _evaluate(self, record: AuditRecord):
        if classify_operation(record.activity) != "High":
            return
        self.add_evidence(
            record.initiated_by,
            EvidenceSource.HIGH_RISK_ADMIN_OP,
            HIGH_RISK_ADMIN_OP_POINTS,
            reason=f"High-risk admin operation: {record.activity}",
            payload=record,
        )
