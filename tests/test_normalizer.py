"""
Unit tests for column resolution and record normalization.
"""

import math

import pytest

from m365_compromise_engine.collectors.normalizer import (
    AppRegistrationRecord,
    MailTraceRecord,
    SignInRecord,
    SourceType,
    coerce_bool,
    coerce_text,
    header_key,
    normalize_record,
    normalize_records,
    resolve_columns,
)


class TestCoercion:

    @pytest.mark.parametrize("value", [None, "", "null", "NaN", "None", "N/A", float("nan")])
    def test_null_like_values_become_empty(self, value):
        assert coerce_text(value) == ""

    def test_text_is_stripped(self):
        assert coerce_text("  alice@contoso.com ") == "alice@contoso.com"

    def test_only_true_is_true(self):
        assert coerce_bool("True") is True
        assert coerce_bool("true ") is True
        assert coerce_bool("yes") is False
        assert coerce_bool("1") is False
        assert coerce_bool(None) is False

    def test_header_key_ignores_case_spacing_and_bom(self):
        assert header_key("\ufeffSender Address") == header_key("sender_address")
        assert header_key("IP-Address") == "ipaddress"


class TestColumnResolution:

    def test_first_alias_present_wins(self):
        columns = resolve_columns(["UPN", "UserPrincipalName", "IP"], SourceType.SIGN_IN)
        assert columns["user_principal_name"] == "UserPrincipalName"
        assert columns["ip_address"] == "IP"

    def test_message_trace_alternate_headers(self):
        row = {
            "origin_timestamp_utc": "2024-05-01T10:00:00Z",
            "sender_address": "alice@contoso.com",
            "Recipient Address": "bob@fabrikam.com",
            "message_subject": "Invoice",
            "Delivery Status": "Failed",
            "network_message_id": "abc-123",
            "original_client_ip": "198.51.100.7",
        }
        record = normalize_record(row, SourceType.MESSAGE_TRACE)
        assert isinstance(record, MailTraceRecord)
        assert record.sender == "alice@contoso.com"
        assert record.recipient == "bob@fabrikam.com"
        assert record.subject == "Invoice"
        assert record.status == "Failed"
        assert record.message_id == "abc-123"
        assert record.from_ip == "198.51.100.7"

    def test_missing_columns_default_to_empty(self):
        record = normalize_record({"UserPrincipalName": "alice@contoso.com"}, SourceType.SIGN_IN)
        assert record.country == ""
        assert record.risk_level == ""
        assert record.is_interactive is False


class TestRecords:

    def test_error_code_zero_is_success(self):
        assert SignInRecord(error_code="0").succeeded
        assert not SignInRecord(error_code="50126").succeeded

    def test_status_used_when_no_error_code(self):
        assert SignInRecord(status="Success").succeeded
        assert not SignInRecord(status="Failure").succeeded

    def test_location_joins_known_parts(self):
        assert SignInRecord(city="Lagos", country="Nigeria").location == "Lagos, Nigeria"
        assert SignInRecord().location == ""

    def test_blank_direction_counts_as_outbound(self):
        assert MailTraceRecord(direction="").is_outbound
        assert MailTraceRecord(direction="Originating / Outbound").is_outbound
        assert not MailTraceRecord(direction="Inbound").is_outbound

    def test_permission_list_splits_on_common_separators(self):
        record = AppRegistrationRecord(required_permissions="Mail.Read; Mail.Send|User.Read, Files.Read")
        assert record.permission_list == ["Mail.Read", "Mail.Send", "User.Read", "Files.Read"]

    def test_normalize_records_uses_union_of_headers(self):
        rows = [
            {"UserPrincipalName": "alice@contoso.com"},
            {"UserPrincipalName": "bob@contoso.com", "Country": "Nigeria"},
        ]
        records = normalize_records(rows, SourceType.SIGN_IN)
        assert [r.country for r in records] == ["", "Nigeria"]

    def test_nan_from_dataframe_rows(self):
        record = normalize_record(
            {"SenderAddress": "alice@contoso.com", "Subject": math.nan},
            SourceType.MESSAGE_TRACE,
        )
        assert record.subject == ""
