"""
Sign-in Analyzer
Analyzes: successful sign-ins from unusual countries, high-risk sign-ins,
and failed attempts that match either pattern (tracked, not scored).
"""

from __future__ import annotations

import logging

from .base import RecordAnalyzer, EvidenceSource
from ..collectors.normalizer import SignInRecord
from ..config import (
    DetectionConfig,
    FAILED_SIGNIN_POINTS,
    HIGH_RISK_SIGNIN_POINTS,
    UNUSUAL_SIGNIN_POINTS,
)

logger = logging.getLogger("m365_compromise_engine.analyzers.signin")

_UNRESOLVED_COUNTRIES = {"unknown", "private"}


def is_unusual_location(record: SignInRecord, config: DetectionConfig) -> bool:
    """
    A sign-in location is unusual when its country is known and not in the
    configured allow-list. An empty allow-list disables the check.
    """
    allowed = {c.strip().lower() for c in config.allowed_countries if c.strip()}
    if not allowed:
        return False
    country = record.country.strip().lower()
    if not country or country in _UNRESOLVED_COUNTRIES:
        return False
    return country not in allowed


class SignInAnalyzer(RecordAnalyzer):
    name = "signin_analyzer"
    description = "Sign-in analysis: unusual locations, risky sign-ins"

    def __init__(self, config: DetectionConfig | None = None):
        super().__init__(config)
        self.risky_ips: list[str] = []

    def _analyze(self, records: list):
        self.risky_ips = []
        super()._analyze(records)

    def _evaluate(self, record: SignInRecord):
        subject = record.user_principal_name
        unusual = is_unusual_location(record, self.config)
        high_risk = record.risk_level.lower() == "high"

        if unusual and record.ip_address and record.ip_address not in self.risky_ips:
            self.risky_ips.append(record.ip_address)

        if not (unusual or high_risk):
            return

        if not record.succeeded:
            reasons = []
            if unusual:
                reasons.append(f"Failed sign-in from unusual location ({record.country})")
            if high_risk:
                reasons.append("Failed sign-in with high risk level")
            self.add_evidence(
                subject,
                EvidenceSource.FAILED_SIGN_IN,
                FAILED_SIGNIN_POINTS,
                reason="; ".join(reasons),
                payload=record,
            )
            return

        if unusual:
            self.add_evidence(
                subject,
                EvidenceSource.UNUSUAL_SIGN_IN,
                UNUSUAL_SIGNIN_POINTS,
                reason=f"Successful sign-in from unusual location ({record.country})",
                payload=record,
            )
        if high_risk:
            self.add_evidence(
                subject,
                EvidenceSource.UNUSUAL_SIGN_IN,
                HIGH_RISK_SIGNIN_POINTS,
                reason="Successful sign-in with high risk level",
                payload=record,
            )
