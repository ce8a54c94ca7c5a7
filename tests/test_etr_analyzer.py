"""
Tests for the ETR spam-pattern passes and their thresholds.
"""

import pytest

from m365_compromise_engine.analyzers import EtrSpamAnalyzer, EvidenceSource, SpamPatternDetector
from m365_compromise_engine.analyzers.etr_analyzer import (
    RISK_EXCESSIVE_VOLUME,
    RISK_FAILED_DELIVERY,
    RISK_IDENTICAL_SUBJECTS,
    RISK_RISKY_IP,
    RISK_SPAM_KEYWORDS,
    detect_spam_patterns,
)
from m365_compromise_engine.collectors.normalizer import MailTraceRecord
from m365_compromise_engine.config import DetectionConfig, TENANT_WIDE_SUBJECT


def _types(indicators):
    return [i.risk_type for i in indicators]


class TestIdenticalSubjects:

    def test_fifty_identical_subjects_is_critical(self, message_factory):
        indicators = detect_spam_patterns(message_factory(50, subject="Invoice overdue"))
        matching = [i for i in indicators if i.risk_type == RISK_IDENTICAL_SUBJECTS]
        assert len(matching) == 1
        assert matching[0].risk_level == "Critical"
        assert matching[0].message_count == 50

    def test_forty_nine_is_below_threshold(self, message_factory):
        indicators = detect_spam_patterns(message_factory(49, subject="Invoice overdue"))
        assert RISK_IDENTICAL_SUBJECTS not in _types(indicators)

    def test_subject_grouping_ignores_case_and_padding(self, message_factory):
        messages = (
            message_factory(25, subject="Invoice Overdue")
            + message_factory(25, subject="  invoice overdue ", start=25)
        )
        assert RISK_IDENTICAL_SUBJECTS in _types(detect_spam_patterns(messages))

    def test_short_subjects_are_ignored(self, message_factory):
        indicators = detect_spam_patterns(message_factory(60, subject="Hi"))
        assert RISK_IDENTICAL_SUBJECTS not in _types(indicators)

    def test_sample_caps(self, message_factory):
        indicator = detect_spam_patterns(message_factory(60, subject="Invoice overdue"))[0]
        assert len(indicator.message_ids) == 10
        assert len(indicator.recipients) == 10
        assert indicator.subjects == ["Invoice overdue"]


class TestSpamKeywords:

    def test_four_keyword_messages_from_one_sender(self, message_factory):
        messages = [
            MailTraceRecord(sender="alice@contoso.com", subject=f"Buy bitcoin today {i}",
                            message_id=f"m{i}", direction="Outbound")
            for i in range(4)
        ]
        indicators = [i for i in detect_spam_patterns(messages) if i.risk_type == RISK_SPAM_KEYWORDS]
        assert len(indicators) == 1
        assert indicators[0].risk_level == "Medium"
        assert indicators[0].message_count == 4
        assert "bitcoin" in indicators[0].description

    def test_three_keyword_messages_are_not_enough(self):
        messages = [
            MailTraceRecord(sender="alice@contoso.com", subject=f"Buy bitcoin today {i}",
                            direction="Outbound")
            for i in range(3)
        ]
        assert RISK_SPAM_KEYWORDS not in _types(detect_spam_patterns(messages))

    def test_keyword_matches_spread_over_senders(self):
        messages = [
            MailTraceRecord(sender=f"user{i}@contoso.com", subject="bitcoin offer",
                            direction="Outbound")
            for i in range(8)
        ]
        assert RISK_SPAM_KEYWORDS not in _types(detect_spam_patterns(messages))


class TestVolumeAndFailures:

    def test_excessive_volume_is_strictly_greater_than_limit(self, message_factory):
        config = DetectionConfig(max_messages_per_sender=5)
        at_limit = [
            MailTraceRecord(sender="alice@contoso.com", subject=f"Note {i}", direction="Outbound")
            for i in range(5)
        ]
        over_limit = at_limit + [MailTraceRecord(sender="alice@contoso.com", subject="Note 5")]
        assert RISK_EXCESSIVE_VOLUME not in _types(detect_spam_patterns(at_limit, config))
        assert RISK_EXCESSIVE_VOLUME in _types(detect_spam_patterns(over_limit, config))

    def test_failed_delivery_over_threshold(self, message_factory):
        messages = [
            MailTraceRecord(sender="alice@contoso.com", subject=f"Offer {i}",
                            status=status, direction="Outbound")
            for i, status in enumerate(["Failed", "Bounced", "Rejected", "Blocked"] * 3)
        ]
        indicators = [i for i in detect_spam_patterns(messages) if i.risk_type == RISK_FAILED_DELIVERY]
        assert len(indicators) == 1
        assert indicators[0].message_count == 12

    def test_inbound_messages_are_ignored(self, message_factory):
        inbound = [
            MailTraceRecord(sender="spammer@fabrikam.com", subject="Invoice overdue",
                            direction="Inbound")
            for _ in range(60)
        ]
        assert detect_spam_patterns(inbound) == []


class TestRiskyIpCorrelation:

    def test_risky_ip_matches_from_and_to(self):
        messages = [
            MailTraceRecord(sender="alice@contoso.com", subject="a", from_ip="198.51.100.9"),
            MailTraceRecord(sender="alice@contoso.com", subject="b", to_ip="198.51.100.9"),
            MailTraceRecord(sender="bob@contoso.com", subject="c", from_ip="203.0.113.1"),
        ]
        indicators = detect_spam_patterns(messages, risky_ips=["198.51.100.9"])
        risky = [i for i in indicators if i.risk_type == RISK_RISKY_IP]
        assert len(risky) == 1
        assert risky[0].message_count == 2
        assert risky[0].sender == "alice@contoso.com"
        assert risky[0].risk_level == "Critical"

    def test_one_indicator_per_ip_across_distinct_senders(self):
        messages = [
            MailTraceRecord(sender="alice@contoso.com", subject="a", from_ip="1.2.3.4"),
            MailTraceRecord(sender="bob@contoso.com", subject="b", from_ip="1.2.3.4"),
        ]
        risky = [
            i for i in detect_spam_patterns(messages, risky_ips=["1.2.3.4"])
            if i.risk_type == RISK_RISKY_IP
        ]
        assert len(risky) == 1
        assert risky[0].risk_level == "Critical"
        assert risky[0].message_count == 2
        assert "2 sender(s)" in risky[0].description

    def test_no_risky_ips_no_indicator(self, message_factory):
        assert RISK_RISKY_IP not in _types(detect_spam_patterns(message_factory(3)))

    def test_risky_ip_without_sender_goes_tenant_wide(self):
        messages = [MailTraceRecord(subject="a", from_ip="198.51.100.9")]
        indicator = detect_spam_patterns(messages, risky_ips=["198.51.100.9"])[0]
        assert indicator.sender == TENANT_WIDE_SUBJECT


class TestOrderingAndIsolation:

    def test_indicators_ordered_by_tier(self, message_factory):
        config = DetectionConfig(failed_delivery_threshold=2)
        messages = (
            message_factory(50, subject="Invoice overdue")
            + message_factory(3, subject="x", status="Failed", sender="bob@contoso.com")
        )
        levels = [i.risk_level for i in detect_spam_patterns(messages, config)]
        assert levels == sorted(levels, key=["Critical", "High", "Medium", "Low"].index)
        assert levels[0] == "Critical"

    def test_failing_pass_does_not_stop_others(self, message_factory, monkeypatch):
        detector = SpamPatternDetector(DetectionConfig())

        def boom(outbound):
            raise RuntimeError("pass failed")

        monkeypatch.setattr(detector, "_excessive_volume", boom)
        indicators = detector.detect(message_factory(50, subject="Invoice overdue"))
        assert RISK_IDENTICAL_SUBJECTS in _types(indicators)


class TestEtrSpamAnalyzer:

    def test_indicators_become_evidence(self, message_factory):
        analyzer = EtrSpamAnalyzer(DetectionConfig())
        contributions = analyzer.analyze(message_factory(50, subject="Invoice overdue"))
        assert len(contributions) == len(analyzer.indicators) == 1
        c = contributions[0]
        assert c.subject == "alice@contoso.com"
        assert c.evidence.source is EvidenceSource.ETR_SPAM_FINDING
        assert c.evidence.points == analyzer.indicators[0].risk_score

    @pytest.mark.parametrize("count", [0, 1])
    def test_small_traces_produce_nothing(self, message_factory, count):
        assert EtrSpamAnalyzer().analyze(message_factory(count)) == []
