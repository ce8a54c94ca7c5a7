"""
Conditional Access Analyzer
Surfaces tenant-wide findings for policies that are disabled, were changed
recently, or explicitly exclude administrative roles. These findings carry
no subject score.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser

from .base import RecordAnalyzer
from ..collectors.normalizer import ConditionalAccessRecord

logger = logging.getLogger("m365_compromise_engine.analyzers.ca")

# Directory role template IDs for administrative roles
ADMIN_ROLE_TEMPLATE_IDS = {
    "62e90394-69f5-4237-9190-012177145e10",  # Global Administrator
    "e8611ab8-c189-46e8-94e1-60213ab1f814",  # Privileged Role Administrator
    "194ae4cb-b126-40b2-bd5b-6091b380977d",  # Security Administrator
    "29232cdf-9323-42fd-ade2-1d097af3e4de",  # Exchange Administrator
    "f28a1f50-f6e7-4571-818b-6a12f2af6b6c",  # SharePoint Administrator
    "fe930be7-5e62-47db-91af-98c3a49a38b1",  # User Administrator
    "9b895d92-2cd3-44c7-9d02-a6ac2d5ea5c3",  # Application Administrator
    "158c047a-c907-4556-b7ef-446551a6b5f7",  # Cloud Application Administrator
    "b1be1c3e-b65d-4f19-8427-f6fa0d97feb9",  # Conditional Access Administrator
    "729827e3-9c14-49f7-bb1b-9608f156bbb8",  # Helpdesk Administrator
    "c4e39bd9-1100-46d3-8c65-fb160da0071f",  # Authentication Administrator
    "7be44c8a-adaf-4e2a-84d6-ab2649e08a13",  # Privileged Authentication Administrator
    "b0f54661-2d74-4c50-afa3-1ec803f12efe",  # Billing Administrator
}


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an exported timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def excluded_admin_roles(record: ConditionalAccessRecord) -> list[str]:
    roles = [r.strip() for r in record.excluded_roles.replace(",", ";").split(";") if r.strip()]
    return [r for r in roles if r.lower() in ADMIN_ROLE_TEMPLATE_IDS or "admin" in r.lower()]


class ConditionalAccessAnalyzer(RecordAnalyzer):
    name = "ca_analyzer"
    description = "Conditional Access analysis: disabled, recently changed, admin exclusions"

    def _analyze(self, records: list):
        self.reference_time = self.config.reference_time or datetime.now(timezone.utc)
        if self.reference_time.tzinfo is None:
            self.reference_time = self.reference_time.replace(tzinfo=timezone.utc)
        super()._analyze(records)

    def _evaluate(self, record: ConditionalAccessRecord):
        reasons = []
        risk_level = "Low"

        if record.state.lower() == "disabled":
            reasons.append("Policy is disabled")
            risk_level = "Medium"

        modified = parse_timestamp(record.modified)
        window = timedelta(days=self.config.ca_recent_change_days)
        if modified and self.reference_time - window <= modified <= self.reference_time:
            reasons.append(f"Policy modified within the last {self.config.ca_recent_change_days} days")
            risk_level = "Medium"

        admin_roles = excluded_admin_roles(record)
        if admin_roles:
            reasons.append("Policy excludes admin roles")
            risk_level = "High"

        if not reasons:
            return

        self.add_tenant_finding(
            category="ConditionalAccess",
            name=record.display_name or record.policy_id or "Unnamed policy",
            risk_level=risk_level,
            reasons=reasons,
            detail={
                "policy_id": record.policy_id,
                "state": record.state,
                "modified": record.modified,
                "excluded_roles": admin_roles,
            },
        )
