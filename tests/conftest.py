"""
Shared fixtures for the compromise engine test suite.
"""

from datetime import datetime, timezone

import pytest

from m365_compromise_engine.collectors.normalizer import MailTraceRecord, SignInRecord
from m365_compromise_engine.config import DetectionConfig


@pytest.fixture
def config():
    """Detection settings with an allow-list and one tenant domain."""
    return DetectionConfig(
        allowed_countries=("United States",),
        tenant_domains=("contoso.com",),
        reference_time=datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc),
    )


def make_sign_in(user="alice@contoso.com", country="United States", ip="203.0.113.10",
                 error_code="0", risk_level="none", **extra):
    return SignInRecord(
        user_principal_name=user,
        country=country,
        ip_address=ip,
        error_code=error_code,
        risk_level=risk_level,
        **extra,
    )


def make_messages(count, sender="alice@contoso.com", subject="Quarterly update",
                  status="Delivered", start=0, **extra):
    return [
        MailTraceRecord(
            sender=sender,
            recipient=f"user{start + i}@fabrikam.com",
            subject=subject,
            status=status,
            message_id=f"<msg-{sender}-{start + i}@contoso.com>",
            direction="Outbound",
            **extra,
        )
        for i in range(count)
    ]


@pytest.fixture
def sign_in_factory():
    return make_sign_in


@pytest.fixture
def message_factory():
    return make_messages
