"""
Application Registration Analyzer
Analyzes: app registrations requesting high-risk Graph/Exchange permissions,
and apps with no homepage and no verified publisher domain.
"""

from __future__ import annotations

import logging

from .base import RecordAnalyzer, EvidenceSource
from ..collectors.normalizer import AppRegistrationRecord
from ..config import HIGH_RISK_APP_POINTS, TENANT_WIDE_SUBJECT

logger = logging.getLogger("m365_compromise_engine.analyzers.app")


class AppRegistrationAnalyzer(RecordAnalyzer):
    name = "app_analyzer"
    description = "Application security: high-risk permissions, unattributed apps"

    def _evaluate(self, record: AppRegistrationRecord):
        high_risk = {p.lower() for p in self.config.high_risk_permissions}
        risky = [p for p in record.permission_list if p.lower() in high_risk]
        unattributed = not record.homepage and not record.publisher_domain
        app_name = record.display_name or record.app_id or "Unnamed application"

        if risky:
            reason = f"App '{app_name}' requests high-risk permissions: {', '.join(risky)}"
            self.add_evidence(
                TENANT_WIDE_SUBJECT,
                EvidenceSource.HIGH_RISK_APP_REGISTRATION,
                HIGH_RISK_APP_POINTS,
                reason=reason,
                payload=record,
            )
            reasons = [f"High-risk permissions: {', '.join(risky)}"]
            if unattributed:
                reasons.append("No homepage and no publisher domain")
            self.add_tenant_finding(
                category="AppRegistration",
                name=app_name,
                risk_level="High",
                reasons=reasons,
                detail={"app_id": record.app_id, "created": record.created},
            )
        elif unattributed:
            self.add_tenant_finding(
                category="AppRegistration",
                name=app_name,
                risk_level="Medium",
                reasons=["No homepage and no publisher domain"],
                detail={"app_id": record.app_id, "created": record.created},
            )
