from .base import (
    BaseAnalyzer,
    EvidenceItem,
    EvidenceSource,
    RecordAnalyzer,
    RiskContribution,
    TenantFinding,
)
from .signin_analyzer import SignInAnalyzer
from .audit_analyzer import AdminAuditAnalyzer
from .inbox_rule_analyzer import InboxRuleAnalyzer
from .delegation_analyzer import DelegationAnalyzer
from .app_analyzer import AppRegistrationAnalyzer
from .ca_analyzer import ConditionalAccessAnalyzer
from .etr_analyzer import EtrSpamAnalyzer, SpamIndicator, SpamPatternDetector, detect_spam_patterns

ALL_ANALYZERS = [
    SignInAnalyzer,
    AdminAuditAnalyzer,
    InboxRuleAnalyzer,
    DelegationAnalyzer,
    AppRegistrationAnalyzer,
    ConditionalAccessAnalyzer,
    EtrSpamAnalyzer,
]

__all__ = [
    "BaseAnalyzer",
    "EvidenceItem",
    "EvidenceSource",
    "RecordAnalyzer",
    "RiskContribution",
    "TenantFinding",
    "SignInAnalyzer",
    "AdminAuditAnalyzer",
    "InboxRuleAnalyzer",
    "DelegationAnalyzer",
    "AppRegistrationAnalyzer",
    "ConditionalAccessAnalyzer",
    "EtrSpamAnalyzer",
    "SpamIndicator",
    "SpamPatternDetector",
    "detect_spam_patterns",
    "ALL_ANALYZERS",
]
