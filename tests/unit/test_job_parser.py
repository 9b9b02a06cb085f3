from __future__ import annotations

import pytest

from jobsync.parser import parse_job_posting
from jobsync.parser.job_parser import (
    extract_email,
    extract_section,
    extract_tech_stack,
    infer_contract_type,
    score_email_candidates,
)


def test_bracketed_title_yields_remote_level_role_and_company():
    parsed = parse_job_posting("[Remote] [Senior] Backend Engineer - Acme Corp", "")

    assert parsed.is_remote is True
    assert parsed.experience_level == "Senior"
    assert parsed.role == "Backend Engineer"
    assert parsed.company == "Acme Corp"


def test_bracketed_location_is_kept_when_not_remote_or_level():
    parsed = parse_job_posting("[São Paulo] Desenvolvedor Python @ Initech", "")

    assert parsed.location == "São Paulo"
    assert parsed.role == "Desenvolvedor Python"
    assert parsed.company == "Initech"


def test_plain_title_becomes_role():
    parsed = parse_job_posting("Backend Engineer", "")

    assert parsed.role == "Backend Engineer"
    assert parsed.company is None


def test_hyphenated_role_is_not_split_without_spaced_separator():
    parsed = parse_job_posting("[Remoto] Front-end Developer", "")

    assert parsed.role == "Front-end Developer"
    assert parsed.company is None


def test_tech_stack_matches_exact_keywords_only():
    stack = extract_tech_stack("", "We use React, Node.js and PostgreSQL daily")

    assert set(stack) == {"React", "Node.js", "PostgreSQL"}


@pytest.mark.parametrize(
    "body, present, absent",
    [
        ("Experience with C# and .NET required", {"C#", ".NET"}, {"R"}),
        ("Salário de R$ 8.000", set(), {"R"}),
        ("Backend in Go with gRPC", {"Go", "gRPC"}, {"Golang"}),
        ("JavaScript only", {"JavaScript"}, {"Java"}),
    ],
)
def test_tech_stack_keyword_boundaries(body, present, absent):
    stack = set(extract_tech_stack("", body))

    assert present <= stack
    assert not (absent & stack)


def test_generic_apply_mailbox_loses_to_personal_address_elsewhere():
    body = (
        "## Sobre a vaga\n"
        "Time de plataforma, falar com maria.silva@acme.com para dúvidas.\n"
        "\n"
        "## Como se candidatar\n"
        "Envie o currículo para rh@acme.com\n"
    )

    assert extract_email(body) == "maria.silva@acme.com"
    assert parse_job_posting("Dev", body).contact_email == "maria.silva@acme.com"


def test_equal_scores_keep_first_seen_order():
    body = "Contato: ana@acme.com\nContato: bruno@acme.com\n"

    candidates = score_email_candidates(body)

    assert [c.email for c in candidates] == ["ana@acme.com", "bruno@acme.com"]
    assert candidates[0].score == candidates[1].score
    assert extract_email(body) == "ana@acme.com"


def test_apply_bonus_needs_the_whole_address():
    body = "Contato: ana@acme.com\n\n## Como se candidatar\nEnvie para joana@acme.com"

    scores = {c.email: c.score for c in score_email_candidates(body)}

    assert scores["joana@acme.com"] > scores["ana@acme.com"]
    assert extract_email(body) == "joana@acme.com"


def test_fallback_address_is_demoted():
    body = (
        "## Como se candidatar\n"
        "Envie para joao.souza@acme.com. Em caso de não haver resposta, escreva para carla@acme.com\n"
    )

    assert extract_email(body) == "joao.souza@acme.com"


def test_only_generic_mailboxes_yield_no_contact():
    body = "Contato: jobs@acme.com ou noreply@acme.com"

    assert extract_email(body) is None


def test_brazilian_city_without_contract_keyword_is_clt():
    body = "Desenvolvedor backend para atuar em Curitiba com Python."

    parsed = parse_job_posting("Backend Developer", body, [], "github_issues")

    assert parsed.contract_type == "CLT"


def test_ats_posting_without_brazil_signal_is_pj():
    body = "Backend developer working with Python and distributed systems."

    parsed = parse_job_posting("Backend Developer", body, [], "greenhouse")

    assert parsed.contract_type == "PJ"


def test_ats_posting_with_brazil_signal_is_clt():
    body = "Backend developer working from Curitiba with Python."

    assert parse_job_posting("Backend Developer", body, [], "lever").contract_type == "CLT"


def test_explicit_contract_keyword_in_labels_wins():
    parsed = parse_job_posting("Dev", "Atuação em São Paulo", ["PJ"], "github_issues")

    assert parsed.contract_type == "PJ"


def test_foreign_market_on_github_is_pj():
    assert (
        infer_contract_type(
            title="Engineer",
            body="Hiring across Europe",
            labels=[],
            location=None,
            source_type="github_issues",
        )
        == "PJ"
    )


def test_level_requires_whole_word():
    parsed = parse_job_posting("Desenvolvedor", "Trabalhamos com parsers e srvs internos")

    assert parsed.experience_level == "Unknown"


def test_sections_salary_links_and_apply_url():
    body = (
        "**Empresa:** Initech\n"
        "Local: Belo Horizonte\n"
        "Salário: R$ 8.000 a R$ 10.000\n"
        "\n"
        "## Benefícios\n"
        "Vale refeição e plano de saúde\n"
        "\n"
        "## Como se candidatar\n"
        "Acesse https://initech.gupy.io/jobs/123 ou fale em https://wa.me/5511999999999\n"
        "LinkedIn: https://www.linkedin.com/in/recrutadora-initech\n"
    )

    parsed = parse_job_posting("Desenvolvedor Pleno", body)

    assert parsed.company == "Initech"
    assert parsed.location == "Belo Horizonte"
    assert parsed.salary == "R$ 8.000 a R$ 10.000"
    assert parsed.benefits == "Vale refeição e plano de saúde"
    assert parsed.apply_url == "https://initech.gupy.io/jobs/123"
    assert parsed.contact_whatsapp == "https://wa.me/5511999999999"
    assert parsed.contact_linkedin == "https://www.linkedin.com/in/recrutadora-initech"
    assert parsed.experience_level == "Pleno"


def test_extract_section_returns_none_when_missing():
    assert extract_section("nothing here", "benefits") is None


def test_parser_tolerates_missing_inputs():
    parsed = parse_job_posting(None, None, None)

    assert parsed.role is None
    assert parsed.tech_stack == []
    assert parsed.contact_email is None
    assert parsed.has_signal() is False
