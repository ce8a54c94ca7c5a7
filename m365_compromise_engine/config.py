"""
Configuration module for the M365 Compromise Detection Engine.
Defines detection thresholds, point values, enrichment and output settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ConfigError(Exception):
    """Raised when a configuration file cannot be loaded or is invalid."""


# ─── Input Files ────────────────────────────────────────────────────────────

SOURCE_SIGN_INS = "sign_ins"
SOURCE_ADMIN_AUDIT = "admin_audit"
SOURCE_INBOX_RULES = "inbox_rules"
SOURCE_DELEGATIONS = "delegations"
SOURCE_APP_REGISTRATIONS = "app_registrations"
SOURCE_CONDITIONAL_ACCESS = "conditional_access"
SOURCE_MESSAGE_TRACE = "message_trace"

DEFAULT_INPUT_FILES = {
    SOURCE_SIGN_INS: "SignInLogs.csv",
    SOURCE_ADMIN_AUDIT: "AdminAuditLogs.csv",
    SOURCE_INBOX_RULES: "InboxRules.csv",
    SOURCE_DELEGATIONS: "MailboxDelegations.csv",
    SOURCE_APP_REGISTRATIONS: "AppRegistrations.csv",
    SOURCE_CONDITIONAL_ACCESS: "ConditionalAccessPolicies.csv",
    SOURCE_MESSAGE_TRACE: "MessageTrace.csv",
}

# Synthetic subject for findings with no natural per-user owner
TENANT_WIDE_SUBJECT = "Tenant-Wide"


# ─── Risk Points ────────────────────────────────────────────────────────────

UNUSUAL_SIGNIN_POINTS = 5
HIGH_RISK_SIGNIN_POINTS = 15
FAILED_SIGNIN_POINTS = 0
HIGH_RISK_ADMIN_OP_POINTS = 10
SUSPICIOUS_INBOX_RULE_POINTS = 15
SUSPICIOUS_DELEGATION_POINTS = 8
HIGH_RISK_APP_POINTS = 20

# Per-indicator contribution of ETR spam findings
SPAM_INDICATOR_POINTS = {
    "ExcessiveVolume": 20,
    "IdenticalSubjects": 30,
    "SpamKeywords": 10,
    "RiskyIPCorrelation": 35,
    "FailedDelivery": 10,
}

# Risk tier lower bounds (inclusive)
RISK_TIER_THRESHOLDS = [
    (50, "Critical"),
    (30, "High"),
    (15, "Medium"),
    ( 0, "Low"),
]


# ─── Detection Tables ───────────────────────────────────────────────────────

# Microsoft Graph application permission IDs (and names) that grant
# tenant-wide write or mail access.
HIGH_RISK_PERMISSIONS = frozenset({
    "1bfefb4e-e0b5-418b-a88f-73c46d2cc8e9",  # Application.ReadWrite.All
    "19dbc75e-c2e2-444c-a770-ec69d8559fc7",  # Directory.ReadWrite.All
    "9e3f62cf-ca93-4989-b6ce-bf83c28f9fe8",  # RoleManagement.ReadWrite.Directory
    "e2a3a72e-5f79-4c64-b1b1-878b674786c9",  # Mail.ReadWrite
    "b633e1c5-b582-4048-a93e-9f11b44c7e96",  # Mail.Send
    "75359482-378d-4052-8f01-80520e7db3cd",  # Files.ReadWrite.All
    "a82116e5-55eb-4c41-a434-62fe8a61c773",  # Sites.FullControl.All
    "741f803b-c850-494e-b5df-cde7c675a1ca",  # User.ReadWrite.All
    "62a82d76-70ea-41e2-9197-370581804d09",  # Group.ReadWrite.All
    "06b708a9-e830-4db3-a914-8e69da51d44f",  # AppRoleAssignment.ReadWrite.All
    "6931bccd-447a-43d1-b442-00a195474933",  # MailboxSettings.ReadWrite
    "dc890d15-9560-4a4c-9b7f-a736ec74ec40",  # full_access_as_app (Exchange)
    "Application.ReadWrite.All",
    "Directory.ReadWrite.All",
    "RoleManagement.ReadWrite.Directory",
    "Mail.ReadWrite",
    "Mail.Send",
    "Files.ReadWrite.All",
    "Sites.FullControl.All",
    "User.ReadWrite.All",
    "Group.ReadWrite.All",
    "AppRoleAssignment.ReadWrite.All",
    "MailboxSettings.ReadWrite",
    "full_access_as_app",
})

SPAM_KEYWORDS = (
    "bitcoin",
    "cryptocurrency",
    "lottery",
    "winner",
    "congratulations",
    "prize",
    "act now",
    "limited time",
    "urgent action",
    "click here",
    "verify your account",
    "password expires",
    "account suspended",
    "wire transfer",
    "gift card",
    "free money",
    "investment opportunity",
    "inheritance",
    "viagra",
    "unsubscribe",
)


# ─── Detection Settings ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class DetectionConfig:
    """
    Immutable detection settings, passed explicitly into every analyzer
    and into the aggregator.
    """
    allowed_countries: tuple[str, ...] = ()
    tenant_domains: tuple[str, ...] = ()          # onmicrosoft.com + primary verified
    high_risk_permissions: frozenset[str] = HIGH_RISK_PERMISSIONS
    spam_keywords: tuple[str, ...] = SPAM_KEYWORDS

    # ETR thresholds
    max_messages_per_sender: int = 200
    max_same_subject_messages: int = 50
    min_subject_length: int = 5
    keyword_min_total_matches: int = 3
    keyword_matches_per_sender: int = 3
    failed_delivery_threshold: int = 10

    # Report sample caps
    sample_message_ids: int = 10
    sample_recipients: int = 10
    sample_subjects: int = 3

    # Conditional Access recency window
    ca_recent_change_days: int = 7
    reference_time: Optional[datetime] = None

    spam_indicator_points: dict[str, int] = field(
        default_factory=lambda: dict(SPAM_INDICATOR_POINTS)
    )

    def with_overrides(self, **changes) -> "DetectionConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


# ─── Geolocation Enrichment ─────────────────────────────────────────────────

@dataclass
class GeoConfig:
    """IP geolocation lookup settings."""
    enabled: bool = True
    base_url: str = "http://ip-api.com/json"
    timeout_seconds: float = 10.0
    cache_ttl_seconds: int = 3600
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0     # Doubles on every retry
    min_jitter_seconds: float = 0.1
    max_jitter_seconds: float = 0.5
    max_workers: int = 10

    @property
    def worker_count(self) -> int:
        return min(self.max_workers, max(2, os.cpu_count() or 1))


# ─── Output Configuration ───────────────────────────────────────────────────

@dataclass
class OutputConfig:
    """Output directory and format settings."""
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: [
        "html", "csv", "json", "markdown"
    ])

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.base_dir:
            self.base_dir = os.path.join(
                os.getcwd(),
                f"m365_compromise_report_{self.timestamp}"
            )

    @property
    def report_dir(self) -> Path:
        return Path(self.base_dir)


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """Top-level configuration for the entire engine."""
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    geo: GeoConfig = field(default_factory=GeoConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    input_files: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_INPUT_FILES))
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str | Path) -> "EngineConfig":
        """Load configuration from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot load configuration from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root in {path} must be an object")

        config = cls()
        if "detection" in data:
            config.detection = _detection_from_dict(_section(data, "detection"))
        if "geo" in data:
            _apply_section(config.geo, _section(data, "geo"), "geo")
        if "output" in data:
            _apply_section(config.output, _section(data, "output"), "output")
        if "input_files" in data:
            input_files = _section(data, "input_files")
            unknown = set(input_files) - set(DEFAULT_INPUT_FILES)
            if unknown:
                raise ConfigError(f"Unknown input sources: {', '.join(sorted(unknown))}")
            for source, name in input_files.items():
                _check_type(f"input_files.{source}", name, str)
            config.input_files.update(input_files)
        if "verbose" in data:
            _check_type("verbose", data["verbose"], bool)
            config.verbose = data["verbose"]
        return config


_SEQUENCE_SETTINGS = ("allowed_countries", "tenant_domains", "spam_keywords", "high_risk_permissions")


def _section(data: dict, name: str) -> dict:
    value = data[name]
    if not isinstance(value, dict):
        raise ConfigError(f"Configuration section '{name}' must be an object")
    return value


def _check_type(name: str, value, expected):
    # bool is a subclass of int and is never a valid threshold
    if expected in (int, float) and isinstance(value, bool):
        raise ConfigError(f"Setting '{name}' must be a number, got {value!r}")
    if expected is float and isinstance(value, int):
        return
    if not isinstance(value, expected):
        raise ConfigError(f"Setting '{name}' must be {expected.__name__}, got {value!r}")


def _apply_section(target, data: dict, section: str):
    """Set known attributes on a mutable config section, checking each type."""
    for k, v in data.items():
        if not hasattr(target, k):
            continue
        current = getattr(target, k)
        if isinstance(current, list):
            if not isinstance(v, list) or not all(isinstance(item, str) for item in v):
                raise ConfigError(f"Setting '{section}.{k}' must be a list of strings")
        else:
            _check_type(f"{section}.{k}", v, type(current))
        setattr(target, k, v)


def _detection_from_dict(data: dict) -> DetectionConfig:
    defaults = DetectionConfig()
    known = {f.name for f in fields(DetectionConfig)}
    changes = {}
    for key, value in data.items():
        if key not in known:
            raise ConfigError(f"Unknown detection setting: {key}")
        if key in _SEQUENCE_SETTINGS:
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ConfigError(f"Detection setting '{key}' must be a list of strings")
            value = frozenset(value) if key == "high_risk_permissions" else tuple(value)
        elif key == "reference_time":
            if value:
                if not isinstance(value, str):
                    raise ConfigError(f"Invalid reference_time: {value!r}")
                try:
                    value = datetime.fromisoformat(value.replace("Z", "+00:00"))
                except ValueError as e:
                    raise ConfigError(f"Invalid reference_time: {value}") from e
            else:
                value = None
        elif key == "spam_indicator_points":
            if not isinstance(value, dict):
                raise ConfigError("Detection setting 'spam_indicator_points' must be an object")
            for name, points in value.items():
                if name not in SPAM_INDICATOR_POINTS:
                    raise ConfigError(f"Unknown spam indicator: {name}")
                _check_type(f"spam_indicator_points.{name}", points, int)
            value = {**SPAM_INDICATOR_POINTS, **value}
        else:
            _check_type(key, value, type(getattr(defaults, key)))
        changes[key] = value
    return DetectionConfig(**changes)
