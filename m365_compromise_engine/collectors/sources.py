"""
Per-source CSV collectors for the exported tenant data.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .base import BaseCollector, CollectorResult
from .normalizer import SourceType
from ..config import DEFAULT_INPUT_FILES

logger = logging.getLogger("m365_compromise_engine.collectors.sources")


class SignInCollector(BaseCollector):
    name = "sign_in_collector"
    source = SourceType.SIGN_IN
    description = "Entra ID sign-in log export"


class AdminAuditCollector(BaseCollector):
    name = "admin_audit_collector"
    source = SourceType.ADMIN_AUDIT
    description = "Directory audit log export"


class InboxRuleCollector(BaseCollector):
    name = "inbox_rule_collector"
    source = SourceType.INBOX_RULE
    description = "Mailbox inbox rule dump"


class DelegationCollector(BaseCollector):
    name = "delegation_collector"
    source = SourceType.DELEGATION
    description = "Mailbox permission / delegation dump"


class AppRegistrationCollector(BaseCollector):
    name = "app_registration_collector"
    source = SourceType.APP_REGISTRATION
    description = "App registration dump"


class ConditionalAccessCollector(BaseCollector):
    name = "conditional_access_collector"
    source = SourceType.CONDITIONAL_ACCESS
    description = "Conditional Access policy dump"


class MessageTraceCollector(BaseCollector):
    name = "message_trace_collector"
    source = SourceType.MESSAGE_TRACE
    description = "Exchange message trace (ETR) export"


ALL_COLLECTORS = [
    SignInCollector,
    AdminAuditCollector,
    InboxRuleCollector,
    DelegationCollector,
    AppRegistrationCollector,
    ConditionalAccessCollector,
    MessageTraceCollector,
]


def collect_all(
    input_dir: Path,
    input_files: dict[str, str] | None = None,
) -> dict[SourceType, CollectorResult]:
    """
    Run every collector against `input_dir`.
    File names come from `input_files` (keyed by source value), falling
    back to the default export names. Absolute names are used as-is.
    """
    input_dir = Path(input_dir)
    names = dict(DEFAULT_INPUT_FILES)
    names.update(input_files or {})

    results = {}
    for cls in ALL_COLLECTORS:
        file_name = names.get(cls.source.value)
        path = input_dir / file_name if file_name else None
        results[cls.source] = cls(path).execute()

    available = [s.value for s, r in results.items() if r.available]
    logger.info(f"Collected {len(available)}/{len(results)} sources: {', '.join(available) or 'none'}")
    return results
