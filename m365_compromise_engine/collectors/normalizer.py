"""
Record normalizer — converts raw CSV rows into strictly-typed records.

Every field of every record type is always present. Missing, NULL or NaN
values become empty strings; boolean columns become real booleans and
default to False on anything unrecognized. Rows are never rejected.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, fields
from typing import Any, Mapping


class SourceType(str, enum.Enum):
    SIGN_IN = "sign_ins"
    ADMIN_AUDIT = "admin_audit"
    INBOX_RULE = "inbox_rules"
    DELEGATION = "delegations"
    APP_REGISTRATION = "app_registrations"
    CONDITIONAL_ACCESS = "conditional_access"
    MESSAGE_TRACE = "message_trace"


_NULL_TOKENS = {"null", "nan", "none", "n/a"}


# ---------------------------------------------------------------------------
# Record types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SignInRecord:
    created: str = ""
    user_principal_name: str = ""
    user_display_name: str = ""
    app_display_name: str = ""
    ip_address: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    status: str = ""
    error_code: str = ""
    failure_reason: str = ""
    risk_level: str = ""
    risk_state: str = ""
    client_app: str = ""
    conditional_access_status: str = ""
    is_interactive: bool = False

    @property
    def succeeded(self) -> bool:
        if self.error_code:
            return self.error_code == "0"
        return self.status.lower() in ("success", "succeeded")

    @property
    def location(self) -> str:
        parts = [p for p in (self.city, self.state, self.country) if p]
        return ", ".join(parts)


@dataclass(frozen=True)
class AuditRecord:
    activity_time: str = ""
    activity: str = ""
    category: str = ""
    initiated_by: str = ""
    target: str = ""
    result: str = ""
    operation_type: str = ""
    correlation_id: str = ""


@dataclass(frozen=True)
class InboxRuleRecord:
    mailbox_owner: str = ""
    rule_name: str = ""
    enabled: bool = False
    forward_to: str = ""
    forward_as_attachment_to: str = ""
    redirect_to: str = ""
    delete_message: bool = False
    move_to_folder: str = ""
    stop_processing_rules: bool = False
    description: str = ""


@dataclass(frozen=True)
class DelegationRecord:
    mailbox: str = ""
    delegate: str = ""
    access_rights: str = ""
    delegation_type: str = ""
    is_inherited: bool = False


@dataclass(frozen=True)
class AppRegistrationRecord:
    app_id: str = ""
    display_name: str = ""
    created: str = ""
    publisher_domain: str = ""
    homepage: str = ""
    required_permissions: str = ""
    sign_in_audience: str = ""

    @property
    def permission_list(self) -> list[str]:
        return [p.strip() for p in _split_multi(self.required_permissions) if p.strip()]


@dataclass(frozen=True)
class ConditionalAccessRecord:
    policy_id: str = ""
    display_name: str = ""
    state: str = ""
    created: str = ""
    modified: str = ""
    included_users: str = ""
    excluded_users: str = ""
    excluded_roles: str = ""
    grant_controls: str = ""


@dataclass(frozen=True)
class MailTraceRecord:
    received: str = ""
    sender: str = ""
    recipient: str = ""
    subject: str = ""
    status: str = ""
    message_id: str = ""
    from_ip: str = ""
    to_ip: str = ""
    direction: str = ""
    size: str = ""

    @property
    def is_outbound(self) -> bool:
        direction = self.direction.lower()
        if not direction:
            return True
        return "outbound" in direction or "send" in direction


# ---------------------------------------------------------------------------
# Column aliases; first match wins
# ---------------------------------------------------------------------------

_ALIASES: dict[SourceType, dict[str, tuple[str, ...]]] = {
    SourceType.SIGN_IN: {
        "created": ("CreatedDateTime", "Date", "DateTime", "Timestamp", "Date (UTC)"),
        "user_principal_name": ("UserPrincipalName", "UPN", "User", "Username"),
        "user_display_name": ("UserDisplayName", "DisplayName"),
        "app_display_name": ("AppDisplayName", "Application", "App"),
        "ip_address": ("IPAddress", "IP", "ClientIP", "IP address"),
        "city": ("City", "Location.City"),
        "state": ("State", "Location.State"),
        "country": ("Country", "CountryOrRegion", "Location.CountryOrRegion"),
        "status": ("Status", "Result", "SignInStatus"),
        "error_code": ("ErrorCode", "Status.ErrorCode", "Sign-in error code"),
        "failure_reason": ("FailureReason", "Status.FailureReason"),
        "risk_level": ("RiskLevel", "RiskLevelDuringSignIn", "RiskLevelAggregated"),
        "risk_state": ("RiskState",),
        "client_app": ("ClientAppUsed", "ClientApp"),
        "conditional_access_status": ("ConditionalAccessStatus",),
        "is_interactive": ("IsInteractive",),
    },
    SourceType.ADMIN_AUDIT: {
        "activity_time": ("ActivityDateTime", "CreationDate", "Date", "Timestamp"),
        "activity": ("ActivityDisplayName", "Activity", "Operation", "Operations"),
        "category": ("Category",),
        "initiated_by": ("InitiatedBy", "UserId", "Actor", "UserPrincipalName"),
        "target": ("TargetResources", "Target", "ObjectId"),
        "result": ("Result", "ResultStatus"),
        "operation_type": ("OperationType",),
        "correlation_id": ("CorrelationId", "Id"),
    },
    SourceType.INBOX_RULE: {
        "mailbox_owner": ("MailboxOwner", "Mailbox", "MailboxOwnerId", "UserPrincipalName"),
        "rule_name": ("RuleName", "Name"),
        "enabled": ("Enabled",),
        "forward_to": ("ForwardTo",),
        "forward_as_attachment_to": ("ForwardAsAttachmentTo",),
        "redirect_to": ("RedirectTo",),
        "delete_message": ("DeleteMessage",),
        "move_to_folder": ("MoveToFolder",),
        "stop_processing_rules": ("StopProcessingRules",),
        "description": ("Description",),
    },
    SourceType.DELEGATION: {
        "mailbox": ("Mailbox", "Identity", "MailboxOwner", "PrimarySmtpAddress"),
        "delegate": ("Delegate", "User", "Trustee", "DelegateUser"),
        "access_rights": ("AccessRights", "Permission", "Permissions"),
        "delegation_type": ("DelegationType", "Type"),
        "is_inherited": ("IsInherited",),
    },
    SourceType.APP_REGISTRATION: {
        "app_id": ("AppId", "ApplicationId", "Id"),
        "display_name": ("DisplayName", "AppDisplayName", "Name"),
        "created": ("CreatedDateTime", "Created"),
        "publisher_domain": ("PublisherDomain",),
        "homepage": ("Homepage", "HomePageUrl", "Web.HomePageUrl"),
        "required_permissions": ("RequiredPermissions", "RequiredResourceAccess", "Permissions"),
        "sign_in_audience": ("SignInAudience",),
    },
    SourceType.CONDITIONAL_ACCESS: {
        "policy_id": ("Id", "PolicyId"),
        "display_name": ("DisplayName", "PolicyName", "Name"),
        "state": ("State",),
        "created": ("CreatedDateTime", "Created"),
        "modified": ("ModifiedDateTime", "Modified", "LastModified"),
        "included_users": ("IncludedUsers", "IncludeUsers"),
        "excluded_users": ("ExcludedUsers", "ExcludeUsers"),
        "excluded_roles": ("ExcludedRoles", "ExcludeRoles"),
        "grant_controls": ("GrantControls", "BuiltInControls"),
    },
    SourceType.MESSAGE_TRACE: {
        "received": ("Received", "Date", "DateTime", "Timestamp", "ReceivedTime",
                     "origin_timestamp_utc", "origin_timestamp"),
        "sender": ("SenderAddress", "Sender", "From", "FromAddress", "sender_address",
                   "P1Sender", "Sender Address"),
        "recipient": ("RecipientAddress", "Recipient", "To", "ToAddress", "Recipients",
                      "recipient_status", "Recipient Address"),
        "subject": ("Subject", "MessageSubject", "message_subject"),
        "status": ("Status", "DeliveryStatus", "Delivery Status", "Event", "EventId"),
        "message_id": ("MessageId", "Message ID", "InternetMessageId", "message_id",
                       "MessageTraceId", "network_message_id"),
        "from_ip": ("FromIP", "SenderIP", "SourceIP", "ClientIP", "original_client_ip",
                    "From IP"),
        "to_ip": ("ToIP", "DestinationIP", "RecipientIP", "original_server_ip", "To IP"),
        "direction": ("Direction", "MessageDirection", "directionality"),
        "size": ("Size", "MessageSize", "total_bytes"),
    },
}

_RECORD_TYPES = {
    SourceType.SIGN_IN: SignInRecord,
    SourceType.ADMIN_AUDIT: AuditRecord,
    SourceType.INBOX_RULE: InboxRuleRecord,
    SourceType.DELEGATION: DelegationRecord,
    SourceType.APP_REGISTRATION: AppRegistrationRecord,
    SourceType.CONDITIONAL_ACCESS: ConditionalAccessRecord,
    SourceType.MESSAGE_TRACE: MailTraceRecord,
}


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def header_key(name: Any) -> str:
    """Canonical form of a column header: lowercase, no spaces/hyphens/underscores."""
    text = str(name or "").lstrip("\ufeff").lower()
    for ch in (" ", "-", "_"):
        text = text.replace(ch, "")
    return text


def coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(coerce_text(v) for v in value if coerce_text(v))
    text = str(value).strip()
    if text.lower() in _NULL_TOKENS:
        return ""
    return text


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return coerce_text(value).lower() == "true"


def _split_multi(value: str) -> list[str]:
    for sep in (",", "|"):
        value = value.replace(sep, ";")
    return value.split(";")


def resolve_columns(headers, source: SourceType) -> dict[str, str]:
    """
    Map each record field to the first matching header present in the data.
    Fields with no matching header are absent from the result.
    """
    by_key = {}
    for h in headers:
        by_key.setdefault(header_key(h), h)

    resolved = {}
    for field_name, aliases in _ALIASES[source].items():
        for alias in aliases:
            header = by_key.get(header_key(alias))
            if header is not None:
                resolved[field_name] = header
                break
    return resolved


def normalize_record(
    raw: Mapping[str, Any],
    source: SourceType,
    columns: dict[str, str] | None = None,
):
    """
    Produce a typed record for `source` from a raw row.
    Pass a precomputed `columns` map (see resolve_columns) when normalizing
    many rows with the same headers.
    """
    source = SourceType(source)
    record_cls = _RECORD_TYPES[source]
    if columns is None:
        columns = resolve_columns(raw.keys(), source)

    values = {}
    for f in fields(record_cls):
        header = columns.get(f.name)
        raw_value = raw.get(header) if header is not None else None
        if f.type in ("bool", bool):
            values[f.name] = coerce_bool(raw_value)
        else:
            values[f.name] = coerce_text(raw_value)
    return record_cls(**values)


def normalize_records(rows, source: SourceType) -> list:
    """Normalize a sequence of rows that share one header set."""
    rows = list(rows)
    if not rows:
        return []
    headers = []
    for row in rows:
        for h in row.keys():
            if h not in headers:
                headers.append(h)
    columns = resolve_columns(headers, SourceType(source))
    return [normalize_record(row, source, columns) for row in rows]
