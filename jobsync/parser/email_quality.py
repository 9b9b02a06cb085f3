from __future__ import annotations

import re
from typing import Iterable, Literal, Optional

EmailQualityReason = Literal[
    "empty",
    "invalid_format",
    "accommodation",
    "noreply",
    "generic_local_part",
    "generic_domain",
    "blocked_pattern",
]

# Matched as substrings of the local part, so "rh.vagas" is generic too.
BLOCKED_LOCAL_PARTS = (
    "noreply",
    "no-reply",
    "do-not-reply",
    "donotreply",
    "support",
    "suporte",
    "help",
    "helpdesk",
    "admin",
    "info",
    "contact",
    "contato",
    "jobs",
    "careers",
    "career",
    "vagas",
    "talent",
    "talents",
    "recruiting",
    "recruitment",
    "rh",
    "atendimento",
    "faleconosco",
)

BLOCKED_DOMAIN_PARTS = (
    "noreply",
    "no-reply",
    "notifications",
    "notification",
    "support",
    "help",
    "donotreply",
)

_FORMAT_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_BLOCKED_PATTERN_RE = re.compile(r"@github\.com$", re.IGNORECASE)


def _has_blocked_part(value: str, blocked: Iterable[str]) -> bool:
    return any(part in value for part in blocked)


def email_quality_reason(email: Optional[str]) -> Optional[EmailQualityReason]:
    """Why ``email`` is not a direct recruiter contact, or ``None`` when it is."""
    normalized = (email or "").strip().lower()
    if not normalized:
        return "empty"

    if not _FORMAT_RE.match(normalized):
        return "invalid_format"

    local_part, _, domain = normalized.partition("@")
    if not local_part or not domain:
        return "invalid_format"

    if "accommodation" in local_part or "accommodation" in domain:
        return "accommodation"

    if "noreply" in local_part or "no-reply" in local_part:
        return "noreply"

    if _has_blocked_part(local_part, BLOCKED_LOCAL_PARTS):
        return "generic_local_part"

    if _has_blocked_part(domain, BLOCKED_DOMAIN_PARTS):
        return "generic_domain"

    if _BLOCKED_PATTERN_RE.search(normalized):
        return "blocked_pattern"

    return None


def is_direct_contact_email(email: Optional[str]) -> bool:
    return email_quality_reason(email) is None
