"""
ETR Spam Pattern Analyzer
Analyzes outbound Exchange message-trace records for signs of a mailbox
being used to send spam or phishing:

  1. Excessive volume per sender
  2. Identical subjects sent in bulk
  3. Spam keywords in subjects
  4. Traffic to/from IPs already flagged by sign-in analysis
  5. Bulk failed deliveries (bounces, rejects, blocks)

Every pass is independent; a failure in one pass is logged and the
others still run. Indicators are ordered by risk tier, then by
descending score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .base import BaseAnalyzer, EvidenceSource
from ..collectors.normalizer import MailTraceRecord
from ..config import DetectionConfig, TENANT_WIDE_SUBJECT

logger = logging.getLogger("m365_compromise_engine.analyzers.etr")

TIER_RANK = {"Critical": 0, "High": 1, "Medium": 2, "Low": 3}

FAILED_STATUS_MARKERS = ("failed", "bounce", "reject", "blocked")

RISK_EXCESSIVE_VOLUME = "ExcessiveVolume"
RISK_IDENTICAL_SUBJECTS = "IdenticalSubjects"
RISK_SPAM_KEYWORDS = "SpamKeywords"
RISK_RISKY_IP = "RiskyIPCorrelation"
RISK_FAILED_DELIVERY = "FailedDelivery"


@dataclass
class SpamIndicator:
    """One spam pattern observed for a sender."""
    sender: str
    risk_type: str
    risk_level: str
    message_count: int
    description: str
    message_ids: list[str] = field(default_factory=list)
    recipients: list[str] = field(default_factory=list)
    subjects: list[str] = field(default_factory=list)
    risk_score: int = 0

    def to_dict(self) -> dict:
        return {
            "sender": self.sender,
            "risk_type": self.risk_type,
            "risk_level": self.risk_level,
            "message_count": self.message_count,
            "description": self.description,
            "message_ids": list(self.message_ids),
            "recipients": list(self.recipients),
            "subjects": list(self.subjects),
            "risk_score": self.risk_score,
        }


def _unique(values: Iterable[str], limit: int | None = None) -> list[str]:
    seen: list[str] = []
    for v in values:
        if v and v not in seen:
            seen.append(v)
            if limit is not None and len(seen) >= limit:
                break
    return seen


def _group_by_sender(messages: Iterable[MailTraceRecord]) -> dict[str, list[MailTraceRecord]]:
    groups: dict[str, list[MailTraceRecord]] = {}
    for m in messages:
        if m.sender:
            groups.setdefault(m.sender, []).append(m)
    return groups


class SpamPatternDetector:
    """Runs the five ETR passes over a message-trace record set."""

    def __init__(self, config: DetectionConfig, risky_ips: Iterable[str] = ()):
        self.config = config
        self.risky_ips = _unique((ip.strip() for ip in risky_ips))

    def detect(self, records: Iterable[MailTraceRecord]) -> list[SpamIndicator]:
        outbound = [r for r in records if r.is_outbound]
        logger.info(f"ETR analysis over {len(outbound)} outbound messages")

        passes: list[tuple[str, Callable[[list[MailTraceRecord]], list[SpamIndicator]]]] = [
            (RISK_EXCESSIVE_VOLUME, self._excessive_volume),
            (RISK_IDENTICAL_SUBJECTS, self._identical_subjects),
            (RISK_SPAM_KEYWORDS, self._spam_keywords),
            (RISK_RISKY_IP, self._risky_ip_correlation),
            (RISK_FAILED_DELIVERY, self._failed_delivery),
        ]

        indicators: list[SpamIndicator] = []
        for label, run_pass in passes:
            try:
                found = run_pass(outbound)
            except Exception as e:
                logger.warning(f"ETR pass {label} failed: {type(e).__name__}: {e}")
                continue
            logger.debug(f"ETR pass {label}: {len(found)} indicators")
            indicators.extend(found)

        indicators.sort(key=lambda i: (TIER_RANK.get(i.risk_level, len(TIER_RANK)), -i.risk_score))
        return indicators

    def _indicator(
        self,
        sender: str,
        risk_type: str,
        risk_level: str,
        messages: list[MailTraceRecord],
        description: str,
    ) -> SpamIndicator:
        cfg = self.config
        return SpamIndicator(
            sender=sender,
            risk_type=risk_type,
            risk_level=risk_level,
            message_count=len(messages),
            description=description,
            message_ids=[m.message_id for m in messages if m.message_id][:cfg.sample_message_ids],
            recipients=_unique((m.recipient for m in messages), cfg.sample_recipients),
            subjects=_unique((m.subject for m in messages), cfg.sample_subjects),
            risk_score=cfg.spam_indicator_points.get(risk_type, 0),
        )

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _excessive_volume(self, outbound: list[MailTraceRecord]) -> list[SpamIndicator]:
        limit = self.config.max_messages_per_sender
        return [
            self._indicator(
                sender, RISK_EXCESSIVE_VOLUME, "High", msgs,
                f"{len(msgs)} outbound messages (threshold {limit})",
            )
            for sender, msgs in _group_by_sender(outbound).items()
            if len(msgs) > limit
        ]

    def _identical_subjects(self, outbound: list[MailTraceRecord]) -> list[SpamIndicator]:
        groups: dict[tuple[str, str], list[MailTraceRecord]] = {}
        for m in outbound:
            key = m.subject.strip().lower()
            if not m.sender or len(key) < self.config.min_subject_length:
                continue
            groups.setdefault((m.sender, key), []).append(m)

        limit = self.config.max_same_subject_messages
        return [
            self._indicator(
                sender, RISK_IDENTICAL_SUBJECTS, "Critical", msgs,
                f"{len(msgs)} messages with identical subject '{msgs[0].subject.strip()}'",
            )
            for (sender, _), msgs in groups.items()
            if len(msgs) >= limit
        ]

    def _spam_keywords(self, outbound: list[MailTraceRecord]) -> list[SpamIndicator]:
        found = []
        for keyword in self.config.spam_keywords:
            needle = keyword.lower()
            matches = [m for m in outbound if needle in m.subject.lower()]
            if len(matches) <= self.config.keyword_min_total_matches:
                continue
            for sender, msgs in _group_by_sender(matches).items():
                if len(msgs) > self.config.keyword_matches_per_sender:
                    found.append(self._indicator(
                        sender, RISK_SPAM_KEYWORDS, "Medium", msgs,
                        f"{len(msgs)} messages with spam keyword '{keyword}' in subject",
                    ))
        return found

    def _risky_ip_correlation(self, outbound: list[MailTraceRecord]) -> list[SpamIndicator]:
        found = []
        for ip in self.risky_ips:
            matches = [m for m in outbound if ip in (m.from_ip, m.to_ip)]
            if not matches:
                continue
            senders = _unique((m.sender for m in matches))
            subject = senders[0] if senders else TENANT_WIDE_SUBJECT
            found.append(self._indicator(
                subject, RISK_RISKY_IP, "Critical", matches,
                f"{len(matches)} messages involving risky IP {ip} "
                f"from {len(senders)} sender(s): {', '.join(senders[:5])}",
            ))
        return found

    def _failed_delivery(self, outbound: list[MailTraceRecord]) -> list[SpamIndicator]:
        failed = [
            m for m in outbound
            if any(marker in m.status.lower() for marker in FAILED_STATUS_MARKERS)
        ]
        limit = self.config.failed_delivery_threshold
        return [
            self._indicator(
                sender, RISK_FAILED_DELIVERY, "Medium", msgs,
                f"{len(msgs)} failed/bounced/rejected deliveries (threshold {limit})",
            )
            for sender, msgs in _group_by_sender(failed).items()
            if len(msgs) > limit
        ]


def detect_spam_patterns(
    records: Iterable[MailTraceRecord],
    config: DetectionConfig | None = None,
    risky_ips: Iterable[str] = (),
) -> list[SpamIndicator]:
    """Convenience wrapper around SpamPatternDetector.detect()."""
    return SpamPatternDetector(config or DetectionConfig(), risky_ips).detect(records)


class EtrSpamAnalyzer(BaseAnalyzer):
    name = "etr_analyzer"
    description = "Message trace spam-pattern analysis"

    def __init__(self, config: DetectionConfig | None = None, risky_ips: Iterable[str] = ()):
        super().__init__(config)
        self.risky_ips = list(risky_ips)
        self.indicators: list[SpamIndicator] = []

    def _analyze(self, records: list):
        self.indicators = SpamPatternDetector(self.config, self.risky_ips).detect(records)
        for indicator in self.indicators:
            self.add_evidence(
                indicator.sender,
                EvidenceSource.ETR_SPAM_FINDING,
                indicator.risk_score,
                reason=f"{indicator.risk_type}: {indicator.description}",
                payload=indicator,
            )
