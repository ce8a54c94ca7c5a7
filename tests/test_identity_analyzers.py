"""
Tests for the per-account extractors: sign-ins, admin audit, inbox rules
and mailbox delegations.
"""

import pytest

from m365_compromise_engine.analyzers import (
    AdminAuditAnalyzer,
    BaseAnalyzer,
    DelegationAnalyzer,
    EvidenceSource,
    InboxRuleAnalyzer,
    RecordAnalyzer,
    SignInAnalyzer,
)
from m365_compromise_engine.analyzers.audit_analyzer import classify_operation
from m365_compromise_engine.analyzers.inbox_rule_analyzer import (
    REASON_DELETES,
    REASON_EXTERNAL_FORWARD,
    REASON_FORWARDS,
    REASON_MOVES_TO_DELETED,
    assess_inbox_rule,
)
from m365_compromise_engine.analyzers.signin_analyzer import is_unusual_location
from m365_compromise_engine.collectors.normalizer import (
    AuditRecord,
    DelegationRecord,
    InboxRuleRecord,
)
from m365_compromise_engine.config import DetectionConfig


class TestAnalyzerContract:

    def test_hooks_must_be_implemented(self):
        class NoHook(RecordAnalyzer):
            pass

        with pytest.raises(TypeError):
            BaseAnalyzer()
        with pytest.raises(TypeError):
            NoHook()

    def test_record_errors_are_isolated(self):
        class Picky(RecordAnalyzer):
            def _evaluate(self, record):
                if record == "bad":
                    raise ValueError("unreadable")
                self.add_evidence(record, EvidenceSource.HIGH_RISK_ADMIN_OP, 10)

        analyzer = Picky()
        contributions = analyzer.analyze(["alice@contoso.com", "bad", "bob@contoso.com"])
        assert [c.subject for c in contributions] == ["alice@contoso.com", "bob@contoso.com"]
        assert analyzer.skipped == 1


class TestSignInAnalyzer:

    def test_allowed_country_is_not_unusual(self, config, sign_in_factory):
        assert not is_unusual_location(sign_in_factory(country="united states"), config)

    def test_unknown_or_blank_country_is_never_unusual(self, config, sign_in_factory):
        assert not is_unusual_location(sign_in_factory(country=""), config)
        assert not is_unusual_location(sign_in_factory(country="Unknown"), config)

    def test_empty_allow_list_disables_location_check(self, sign_in_factory):
        assert not is_unusual_location(sign_in_factory(country="Nigeria"), DetectionConfig())

    def test_successful_unusual_sign_in_scores_five(self, config, sign_in_factory):
        analyzer = SignInAnalyzer(config)
        contributions = analyzer.analyze([sign_in_factory(country="Nigeria")])
        assert len(contributions) == 1
        c = contributions[0]
        assert c.subject == "alice@contoso.com"
        assert c.evidence.source is EvidenceSource.UNUSUAL_SIGN_IN
        assert c.evidence.points == 5

    def test_high_risk_and_unusual_are_scored_separately(self, config, sign_in_factory):
        analyzer = SignInAnalyzer(config)
        contributions = analyzer.analyze([sign_in_factory(country="Nigeria", risk_level="high")])
        assert sorted(c.evidence.points for c in contributions) == [5, 15]

    def test_failed_unusual_sign_in_is_tracked_without_points(self, config, sign_in_factory):
        analyzer = SignInAnalyzer(config)
        contributions = analyzer.analyze([
            sign_in_factory(country="Nigeria", error_code="50126", ip="198.51.100.9"),
        ])
        assert len(contributions) == 1
        assert contributions[0].evidence.source is EvidenceSource.FAILED_SIGN_IN
        assert contributions[0].evidence.points == 0
        assert analyzer.risky_ips == ["198.51.100.9"]

    def test_normal_sign_in_contributes_nothing(self, config, sign_in_factory):
        assert SignInAnalyzer(config).analyze([sign_in_factory()]) == []

    def test_risky_ips_are_deduplicated(self, config, sign_in_factory):
        analyzer = SignInAnalyzer(config)
        analyzer.analyze([
            sign_in_factory(country="Nigeria", ip="198.51.100.9"),
            sign_in_factory(country="Nigeria", ip="198.51.100.9", user="bob@contoso.com"),
        ])
        assert analyzer.risky_ips == ["198.51.100.9"]

    def test_malformed_record_is_skipped(self, config, sign_in_factory):
        analyzer = SignInAnalyzer(config)
        contributions = analyzer.analyze([None, sign_in_factory(country="Nigeria")])
        assert analyzer.skipped == 1
        assert len(contributions) == 1


class TestAdminAuditAnalyzer:

    @pytest.mark.parametrize("activity", [
        "Add member to role",
        "Remove member from role",
        "Add-MailboxPermission",
        "Add delegated permission grant",
        "Add app role assignment to service principal member",
    ])
    def test_high_risk_operations(self, activity):
        assert classify_operation(activity) == "High"

    def test_medium_and_low_operations(self):
        assert classify_operation("Reset user password") == "Medium"
        assert classify_operation("Update user") == "Medium"
        assert classify_operation("User logged in") == "Low"

    def test_only_high_operations_score(self):
        analyzer = AdminAuditAnalyzer()
        contributions = analyzer.analyze([
            AuditRecord(activity="Add member to role", initiated_by="admin@contoso.com"),
            AuditRecord(activity="Reset user password", initiated_by="admin@contoso.com"),
        ])
        assert len(contributions) == 1
        assert contributions[0].subject == "admin@contoso.com"
        assert contributions[0].evidence.points == 10


class TestInboxRuleAnalyzer:

    def test_external_forward(self, config):
        rule = InboxRuleRecord(mailbox_owner="alice@contoso.com", forward_to="evil@attacker.net")
        assert assess_inbox_rule(rule, config) == [REASON_FORWARDS, REASON_EXTERNAL_FORWARD]

    def test_internal_forward_is_not_external(self, config):
        rule = InboxRuleRecord(
            mailbox_owner="alice@contoso.com",
            redirect_to='"Bob" [SMTP:bob@contoso.com]',
        )
        assert assess_inbox_rule(rule, config) == [REASON_FORWARDS]

    def test_delete_and_hide_in_deleted_items(self, config):
        rule = InboxRuleRecord(
            mailbox_owner="alice@contoso.com",
            delete_message=True,
            move_to_folder="Deleted Items",
        )
        assert assess_inbox_rule(rule, config) == [REASON_DELETES, REASON_MOVES_TO_DELETED]

    def test_benign_rule_has_no_reasons(self, config):
        rule = InboxRuleRecord(mailbox_owner="alice@contoso.com", move_to_folder="Newsletters")
        assert assess_inbox_rule(rule, config) == []

    def test_one_contribution_per_rule(self, config):
        contributions = InboxRuleAnalyzer(config).analyze([
            InboxRuleRecord(
                mailbox_owner="alice@contoso.com",
                forward_to="evil@attacker.net",
                delete_message=True,
            ),
        ])
        assert len(contributions) == 1
        assert contributions[0].evidence.points == 15
        assert REASON_EXTERNAL_FORWARD in contributions[0].evidence.reason


class TestDelegationAnalyzer:

    def test_external_full_access_delegate(self, config):
        contributions = DelegationAnalyzer(config).analyze([
            DelegationRecord(
                mailbox="alice@contoso.com",
                delegate="mallory@attacker.net",
                access_rights="FullAccess",
            ),
        ])
        assert len(contributions) == 1
        c = contributions[0]
        assert c.subject == "alice@contoso.com"
        assert c.evidence.points == 8
        assert "attacker.net" in c.evidence.reason
        assert "FullAccess" in c.evidence.reason

    def test_internal_read_only_delegate_is_ignored(self, config):
        contributions = DelegationAnalyzer(config).analyze([
            DelegationRecord(mailbox="alice@contoso.com", delegate="bob@contoso.com",
                             access_rights="ReadPermission"),
        ])
        assert contributions == []

    def test_system_principals_are_ignored(self, config):
        contributions = DelegationAnalyzer(config).analyze([
            DelegationRecord(mailbox="alice@contoso.com", delegate="NT AUTHORITY\\SELF",
                             access_rights="FullAccess"),
        ])
        assert contributions == []
