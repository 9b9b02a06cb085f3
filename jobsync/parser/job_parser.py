"""Heuristic field extraction from semi-structured job postings.

Brazilian GitHub job boards follow loose conventions (bracketed title tags,
markdown section headings in Portuguese or English); ATS boards ship plainer
text. Every extractor is best-effort and returns ``None``/empty when it finds
no signal. Nothing in here raises on odd input.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Sequence

from jobsync.models import ContractType, ExperienceLevel, ParsedFields
from jobsync.parser import patterns as p
from jobsync.parser.email_quality import is_direct_contact_email


def extract_section(body: str, section: str) -> Optional[str]:
    for pattern, inline in p.SECTION_PATTERNS[section]:
        match = pattern.search(body)
        if not match:
            continue
        rest = body[match.end():]

        if inline:
            line = rest.split("\n", 1)[0].strip()
            if line:
                return line[: p.SECTION_CAP]

        end = p.SECTION_END_RE.search(rest)
        end_idx = end.start() if end else min(len(rest), p.SECTION_CAP)
        text = rest[:end_idx].strip().lstrip(":").strip()
        if 0 < len(text) < p.SECTION_MAX_LEN:
            return text
    return None


def extract_salary(body: str) -> Optional[str]:
    for pattern in p.SALARY_PATTERNS:
        match = pattern.search(body)
        if match:
            return match.group(0).strip()
    return extract_section(body, "salary")


def match_level(text: str) -> ExperienceLevel:
    for level, pattern in p.LEVEL_KEYWORDS:
        if pattern.search(text):
            return level  # type: ignore[return-value]
    return "Unknown"


def explicit_contract_type(body: str, labels: Sequence[str]) -> Optional[ContractType]:
    text = f"{body} {' '.join(labels)}".lower()
    for contract, pattern in p.CONTRACT_KEYWORDS:
        if pattern.search(text):
            return contract  # type: ignore[return-value]
    return None


def infer_contract_type(
    *,
    title: str,
    body: str,
    labels: Sequence[str],
    location: Optional[str],
    source_type: Optional[str],
) -> ContractType:
    """Fallback when no explicit contract keyword is present."""
    text = "\n".join([title, body, location or "", " ".join(labels)]).lower()

    if p.BRAZIL_CITY_RE.search(text) or p.BRAZIL_VOCAB_RE.search(text):
        return "CLT"
    # ATS boards list mostly international roles hired as contractors from Brazil.
    if source_type and source_type != "github_issues":
        return "PJ"
    if p.FOREIGN_MARKET_RE.search(text):
        return "PJ"
    return "CLT"


def extract_tech_stack(title: str, body: str) -> List[str]:
    text = f"{title} {body}"
    return [keyword for keyword, pattern in p.TECH_PATTERNS if pattern.search(text)]


@dataclass
class _EmailCandidate:
    email: str
    score: int


def _personal_local_part(local_part: str) -> bool:
    return any(r.match(local_part) for r in p.PERSONAL_LOCAL_PART_RES)


def _line_at(body: str, pos: int) -> str:
    start = body.rfind("\n", 0, pos) + 1
    end = body.find("\n", pos)
    return body[start:] if end == -1 else body[start:end]


def score_email_candidates(body: str) -> List[_EmailCandidate]:
    """Score every direct-contact email in ``body``, best first (ties keep first-seen order)."""
    apply_section = extract_section(body, "apply") or ""
    apply_emails = {m.group(0).lower() for m in p.EMAIL_RE.finditer(apply_section)}
    fallback_emails = {m.group(1).lower() for m in p.FALLBACK_FRAMING_RE.finditer(body)}

    order: List[str] = []
    on_contact_line: Dict[str, bool] = {}
    for match in p.EMAIL_RE.finditer(body):
        email = match.group(0).lower()
        line = _line_at(body, match.start()).replace(match.group(0), " ")
        contact = bool(p.CONTACT_LINE_RE.search(line))
        if email not in on_contact_line:
            order.append(email)
            on_contact_line[email] = contact
        elif contact:
            on_contact_line[email] = True

    scored: List[_EmailCandidate] = []
    for email in order:
        if not is_direct_contact_email(email):
            continue
        local_part, _, domain = email.partition("@")
        if len(domain) < 4 or "." not in domain:
            continue

        score = 0
        if email in apply_emails:
            score += 30
        elif on_contact_line[email]:
            score += 20
        else:
            score -= 10
        if email in fallback_emails:
            score -= 50
        if _personal_local_part(local_part):
            score += 15
        if p.COMMON_TLD_RE.search(domain):
            score += 5
        scored.append(_EmailCandidate(email=email, score=score))

    # sorted() is stable, so equal scores keep first-seen order.
    return sorted(scored, key=lambda c: -c.score)


def extract_email(body: str) -> Optional[str]:
    candidates = score_email_candidates(body)
    return candidates[0].email if candidates else None


def _first_match(pattern: Pattern[str], text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(0) if match else None


def extract_apply_url(body: str) -> Optional[str]:
    section = extract_section(body, "apply")
    if section:
        url = _first_match(p.URL_RE, section)
        if url:
            return url
    return _first_match(p.ATS_URL_RE, body)


def is_remote_text(body: str, labels: Iterable[str]) -> bool:
    return bool(p.REMOTE_RE.search(f"{body} {' '.join(labels)}"))


def _parse_title(title: str, parsed: ParsedFields) -> None:
    match = p.TITLE_RE.match(title)
    if not match:
        parsed.role = title or None
        return

    for bracket in (match.group(1), match.group(2)):
        if not bracket:
            continue
        if p.BRACKET_REMOTE_RE.search(bracket):
            parsed.is_remote = True
        elif p.BRACKET_LEVEL_RE.search(bracket):
            level = match_level(bracket)
            if level != "Unknown":
                parsed.experience_level = level
        else:
            parsed.location = bracket.strip()

    role_company = match.group(3).strip()
    company = match.group(4)
    if company:
        parsed.role = role_company
        parsed.company = company.strip()
        return

    parts = p.TITLE_DASH_SPLIT_RE.split(role_company)
    if len(parts) >= 2:
        parsed.role = parts[0].strip()
        parsed.company = " - ".join(parts[1:]).strip()
    else:
        parsed.role = role_company


def parse_job_posting(
    title: Optional[str],
    body: Optional[str],
    labels: Optional[Iterable[str]] = None,
    source_type: Optional[str] = None,
) -> ParsedFields:
    """Extract structured fields from a posting's title, body and labels."""
    title = (title or "").strip()
    body = body or ""
    label_list = [label for label in (labels or []) if isinstance(label, str)]

    parsed = ParsedFields()
    _parse_title(title, parsed)

    if body:
        if not parsed.company:
            parsed.company = extract_section(body, "company")
        parsed.salary = extract_salary(body)
        if not parsed.location:
            parsed.location = extract_section(body, "location")
        parsed.benefits = extract_section(body, "benefits")
        parsed.contact_email = extract_email(body)
        parsed.contact_linkedin = _first_match(p.LINKEDIN_RE, body)
        parsed.contact_whatsapp = _first_match(p.WHATSAPP_RE, body)
        parsed.apply_url = extract_apply_url(body)

    parsed.tech_stack = extract_tech_stack(title, body)

    if not parsed.is_remote:
        parsed.is_remote = is_remote_text(body, label_list)

    parsed.contract_type = explicit_contract_type(body, label_list) or infer_contract_type(
        title=title,
        body=body,
        labels=label_list,
        location=parsed.location,
        source_type=source_type,
    )

    if not parsed.experience_level:
        parsed.experience_level = match_level(f"{title} {body} {' '.join(label_list)}")

    return parsed
