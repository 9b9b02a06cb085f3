from __future__ import annotations

import pytest

from jobsync.parser import email_quality_reason, is_direct_contact_email


@pytest.mark.parametrize(
    "email, reason",
    [
        (None, "empty"),
        ("   ", "empty"),
        ("not-an-email", "invalid_format"),
        ("accommodation@acme.com", "accommodation"),
        ("no-reply@acme.com", "noreply"),
        ("rh@acme.com", "generic_local_part"),
        ("vagas.ti@acme.com.br", "generic_local_part"),
        ("ana@notifications.acme.com", "generic_domain"),
        ("octocat@github.com", "blocked_pattern"),
        ("maria.silva@acme.com", None),
    ],
)
def test_email_quality_reason(email, reason):
    assert email_quality_reason(email) == reason


def test_direct_contact_is_case_insensitive():
    assert is_direct_contact_email("Maria.Silva@Acme.com") is True
    assert is_direct_contact_email("Careers@Acme.com") is False
