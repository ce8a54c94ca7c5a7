from .base import BaseCollector, CollectorResult, read_csv_rows
from .normalizer import (
    SourceType,
    SignInRecord,
    AuditRecord,
    InboxRuleRecord,
    DelegationRecord,
    AppRegistrationRecord,
    ConditionalAccessRecord,
    MailTraceRecord,
    normalize_record,
    normalize_records,
    resolve_columns,
)
from .sources import (
    SignInCollector,
    AdminAuditCollector,
    InboxRuleCollector,
    DelegationCollector,
    AppRegistrationCollector,
    ConditionalAccessCollector,
    MessageTraceCollector,
    ALL_COLLECTORS,
    collect_all,
)

__all__ = [
    "BaseCollector",
    "CollectorResult",
    "read_csv_rows",
    "SourceType",
    "SignInRecord",
    "AuditRecord",
    "InboxRuleRecord",
    "DelegationRecord",
    "AppRegistrationRecord",
    "ConditionalAccessRecord",
    "MailTraceRecord",
    "normalize_record",
    "normalize_records",
    "resolve_columns",
    "SignInCollector",
    "AdminAuditCollector",
    "InboxRuleCollector",
    "DelegationCollector",
    "AppRegistrationCollector",
    "ConditionalAccessCollector",
    "MessageTraceCollector",
    "ALL_COLLECTORS",
    "collect_all",
]
