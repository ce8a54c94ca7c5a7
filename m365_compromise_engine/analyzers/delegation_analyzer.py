"""
Mailbox Delegation Analyzer
Flags delegates outside the tenant's own domains and delegates holding
FullAccess or SendAs on a mailbox.
"""

from __future__ import annotations

import logging

from .base import RecordAnalyzer, EvidenceSource, email_domain
from ..collectors.normalizer import DelegationRecord
from ..config import DetectionConfig, SUSPICIOUS_DELEGATION_POINTS

logger = logging.getLogger("m365_compromise_engine.analyzers.delegation")

PRIVILEGED_RIGHTS = ("fullaccess", "sendas")

# Built-in principals that show up in every mailbox permission dump
SYSTEM_PRINCIPALS = ("nt authority\\", "s-1-5-")


def assess_delegation(record: DelegationRecord, config: DetectionConfig) -> list[str]:
    delegate = record.delegate.strip()
    if not delegate or delegate.lower().startswith(SYSTEM_PRINCIPALS):
        return []

    reasons = []
    delegate_domain = email_domain(delegate)
    if delegate_domain:
        internal = {d.lower() for d in config.tenant_domains if d}
        mailbox_domain = email_domain(record.mailbox)
        if mailbox_domain:
            internal.add(mailbox_domain)
        if internal and delegate_domain not in internal:
            reasons.append(f"Delegate outside tenant domains ({delegate_domain})")

    rights = record.access_rights.replace(" ", "").lower()
    granted = [r for r in PRIVILEGED_RIGHTS if r in rights]
    if granted:
        labels = {"fullaccess": "FullAccess", "sendas": "SendAs"}
        reasons.append("Delegate holds " + " and ".join(labels[g] for g in granted))
    return reasons


class DelegationAnalyzer(RecordAnalyzer):
    name = "delegation_analyzer"
    description = "Mailbox delegation analysis: external delegates, FullAccess/SendAs"

    def _evaluate(self, record: DelegationRecord):
        reasons = assess_delegation(record, self.config)
        if not reasons:
            return
        self.add_evidence(
            record.mailbox,
            EvidenceSource.SUSPICIOUS_DELEGATION,
            SUSPICIOUS_DELEGATION_POINTS,
            reason="; ".join(reasons),
            payload=record,
        )
