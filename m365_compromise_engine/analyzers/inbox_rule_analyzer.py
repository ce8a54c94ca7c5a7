"""
Inbox Rule Analyzer
Flags mailbox rules commonly planted after account takeover: forwarding,
redirection, silent deletion and hiding mail in deleted/junk folders.
"""

from __future__ import annotations

import logging
import re

from .base import RecordAnalyzer, EvidenceSource, email_domain
from ..collectors.normalizer import InboxRuleRecord
from ..config import DetectionConfig, SUSPICIOUS_INBOX_RULE_POINTS

logger = logging.getLogger("m365_compromise_engine.analyzers.inbox_rules")

REASON_FORWARDS = "Forwards or redirects messages"
REASON_DELETES = "Deletes messages"
REASON_MOVES_TO_DELETED = "Moves messages to Deleted Items"
REASON_EXTERNAL_FORWARD = "Forwards to external address"

DELETED_FOLDER_MARKERS = (
    "deleted items",
    "deleteditems",
    "junk",
    "rss",
    "conversation history",
    "recoverable items",
)

_ADDRESS_PATTERN = re.compile(r"[\w.+'%-]+@[\w-]+(?:\.[\w-]+)+")


def extract_addresses(value: str) -> list[str]:
    """Pull SMTP addresses out of an Exchange recipient string."""
    return _ADDRESS_PATTERN.findall(value or "")


def assess_inbox_rule(record: InboxRuleRecord, config: DetectionConfig) -> list[str]:
    """Return the reasons a rule is suspicious; empty when it is not."""
    reasons = []
    targets = " ; ".join(
        v for v in (record.forward_to, record.forward_as_attachment_to, record.redirect_to) if v
    )

    if targets:
        reasons.append(REASON_FORWARDS)
    if record.delete_message:
        reasons.append(REASON_DELETES)

    folder = record.move_to_folder.lower()
    if folder and any(marker in folder for marker in DELETED_FOLDER_MARKERS):
        reasons.append(REASON_MOVES_TO_DELETED)

    internal = {d.lower() for d in config.tenant_domains if d}
    owner_domain = email_domain(record.mailbox_owner)
    if owner_domain:
        internal.add(owner_domain)

    if internal:
        for address in extract_addresses(targets):
            if email_domain(address) not in internal:
                reasons.append(REASON_EXTERNAL_FORWARD)
                break

    return reasons


class InboxRuleAnalyzer(RecordAnalyzer):
    name = "inbox_rule_analyzer"
    description = "Inbox rule analysis: forwarding, deletion, hidden-folder rules"

    def _evaluate(self, record: InboxRuleRecord):
        reasons = assess_inbox_rule(record, self.config)
        if not reasons:
            return
        self.add_evidence(
            record.mailbox_owner,
            EvidenceSource.SUSPICIOUS_INBOX_RULE,
            SUSPICIOUS_INBOX_RULE_POINTS,
            reason="; ".join(reasons),
            payload=record,
        )
