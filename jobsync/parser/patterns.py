"""Vocabularies and compiled patterns used by the job text parser.

Section headers cover the Portuguese and English conventions seen on
Brazilian GitHub job boards: markdown headings (``## Empresa``), bold labels
(``**Empresa:**``) and plain labels (``Empresa:``). Accented and unaccented
spellings are both accepted.
"""

from __future__ import annotations

import re
from typing import Dict, List, Pattern, Tuple

_I = re.IGNORECASE

# (pattern, inline) pairs; inline labels take the rest of their own line when it is non-empty.
SectionPattern = Tuple[Pattern[str], bool]


def _heading(words: str) -> SectionPattern:
    return re.compile(r"##?\s*(?:" + words + r")\s*:?", _I), False


def _bold(words: str) -> SectionPattern:
    return re.compile(r"\*{1,2}(?:" + words + r"):?\*{1,2}:?\s*", _I), True


def _label(words: str) -> SectionPattern:
    return re.compile(r"(?<![\w])(?:" + words + r"):[ \t]*", _I), True


SECTION_PATTERNS: Dict[str, List[SectionPattern]] = {
    "company": [
        _heading(r"empresa|company|sobre\s*a?\s*empresa|about\s+the\s+company"),
        _bold(r"empresa|company"),
        _label(r"empresa|company"),
    ],
    "role": [
        _heading(r"vaga|cargo|posi[cç][aã]o|position|role"),
        _bold(r"vaga|cargo"),
    ],
    "salary": [
        _heading(r"sal[aá]rio|remunera[cç][aã]o|salary|faixa\s*salarial|compensation"),
        _bold(r"sal[aá]rio|remunera[cç][aã]o|salary"),
        _label(r"sal[aá]rio|salary|faixa|compensation"),
    ],
    "location": [
        _heading(r"localiza[cç][aã]o|local|location|cidade"),
        _bold(r"local|localiza[cç][aã]o|location"),
        _label(r"local|localiza[cç][aã]o|cidade|location"),
    ],
    "contract": [
        _heading(r"contrata[cç][aã]o|tipo\s*de?\s*contrato|contract"),
        _bold(r"contrata[cç][aã]o|contrato"),
        _label(r"contrata[cç][aã]o|contrato"),
    ],
    "level": [
        _heading(r"n[ií]vel|senioridade|level|experience"),
        _bold(r"n[ií]vel|senioridade"),
    ],
    "stack": [
        _heading(r"stack|tecnologias|requisitos|requirements|tech\s*stack|habilidades"),
        _bold(r"stack|tecnologias|requisitos"),
    ],
    "benefits": [
        _heading(r"benef[ií]cios|benefits|diferenciais"),
        _bold(r"benef[ií]cios|benefits"),
    ],
    "apply": [
        _heading(r"como\s*se\s*candidatar|how\s*to\s*apply|candidatar|inscreva|apply"),
        _bold(r"como\s*se\s*candidatar|how\s*to\s*apply"),
    ],
}

SECTION_END_RE = re.compile(r"\n##|\n\*{2}[A-ZÀ-Ý]|\n\n\n")
SECTION_CAP = 500
SECTION_MAX_LEN = 1000

TITLE_RE = re.compile(r"^\[([^\]]+)\]\s*(?:\[([^\]]+)\]\s*)?(.+?)(?:\s+[-–|@]\s+(.+))?$")
TITLE_DASH_SPLIT_RE = re.compile(r"\s+[-–]\s+")

BRACKET_REMOTE_RE = re.compile(r"remoto|remote", _I)
BRACKET_LEVEL_RE = re.compile(r"s[eê]nior|pleno|j[uú]nior|est[aá]gio|intern|lead|\bsr\b|\bjr\b", _I)

# Checked in order; the first match wins.
LEVEL_KEYWORDS: List[Tuple[str, Pattern[str]]] = [
    ("Senior", re.compile(r"\b(?:senior|sênior|sr)\b\.?", _I)),
    ("Pleno", re.compile(r"\b(?:pleno|mid|middle|mid-level)\b", _I)),
    ("Junior", re.compile(r"\b(?:junior|júnior|jr)\b\.?", _I)),
    ("Lead", re.compile(r"\b(?:lead|principal|staff)\b", _I)),
    ("Intern", re.compile(r"\b(?:estagio|estágio|estagiário|estagiario|intern|internship)\b", _I)),
]

CONTRACT_KEYWORDS: List[Tuple[str, Pattern[str]]] = [
    ("Internship", re.compile(r"\b(?:estagio|estágio|internship|intern)\b")),
    ("PJ", re.compile(r"\b(?:pj|pessoa\s*jur[ií]dica)\b")),
    ("PJ", re.compile(r"\b(?:contractor|independent contractor|1099|c2c)\b")),
    ("Freela", re.compile(r"\b(?:freela|freelance|freelancer)\b")),
    ("Freela", re.compile(r"\b(?:consultant|consultoria|part[-\s]?time)\b")),
    ("CLT", re.compile(r"\bclt\b")),
]

BRAZIL_CITY_RE = re.compile(
    r"\b(?:brasil|brazil|são paulo|sao paulo|rio de janeiro|curitiba|campinas|belo horizonte|porto alegre"
    r"|recife|florianópolis|florianopolis|brasilia|brasília|salvador|fortaleza|goiânia|goiania)\b",
    _I,
)
BRAZIL_VOCAB_RE = re.compile(
    r"\b(?:vaga|requisitos|benef[ií]cios|sal[áa]rio|contrata[cç][aã]o|candidatar|remoto no brasil"
    r"|h[ií]brido|presencial)\b",
    _I,
)
FOREIGN_MARKET_RE = re.compile(
    r"\b(?:united states|usa|canada|united kingdom|uk|germany|france|spain|italy|portugal|netherlands"
    r"|sweden|norway|denmark|finland|poland|india|japan|singapore|australia|new zealand|mexico|argentina"
    r"|chile|colombia|europe|global)\b",
    _I,
)

REMOTE_RE = re.compile(r"\bremoto\b|\bremote\b|\b100%\s*remote\b|\bhome\s*office\b|\btrabalho\s*remoto\b", _I)

SALARY_PATTERNS: List[Pattern[str]] = [
    re.compile(r"R\$\s*[\d.,]+(?:\s*(?:a|até|-|–)\s*R?\$?\s*[\d.,]+)?", _I),
    re.compile(
        r"(?:USD|US\$|\$)\s*[\d.,]+(?:\s*(?:to|a|até|-|–)\s*(?:USD|US\$|\$)?\s*[\d.,]+)?"
        r"(?:\s*/\s*(?:month|m[eê]s|ano|year|hour|hora))?",
        _I,
    ),
    re.compile(r"a combinar|a definir|negoci[aá]vel|negotiable", _I),
]

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
CONTACT_LINE_RE = re.compile(r"contato|contact|e-?mail", _I)
FALLBACK_FRAMING_RE = re.compile(
    r"(?:em\s*caso\s*de\s*(?:n[aã]o|non?)\s*haver|if\s*no\s*response|fallback)[^.]{0,50}?"
    r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})",
    _I,
)
PERSONAL_LOCAL_PART_RES = (re.compile(r"^[a-z]+\.[a-z]+$"), re.compile(r"^[a-z]+[0-9]?[a-z]*$"))
COMMON_TLD_RE = re.compile(r"\.(?:com|org|net|io|co|ai|dev|tech|com\.br|org\.br)$")

LINKEDIN_RE = re.compile(r"(?:https?://)?(?:www\.)?linkedin\.com/(?:in|company)/[a-zA-Z0-9_-]+/?", _I)
WHATSAPP_RE = re.compile(r"(?:https?://)?(?:wa\.me|api\.whatsapp\.com)/[0-9]+", _I)

URL_RE = re.compile(r"https?://[^\s)>\]]+")
ATS_URL_RE = re.compile(
    r"(?:https?://)?(?:[\w-]+\.)?(?:lever|greenhouse|workable|gupy|kenoby|recruitee|bamboohr|indeed|linkedin)"
    r"\.(?:co|com|io|com\.br)[^\s)>\]]*",
    _I,
)

TECH_KEYWORDS: Tuple[str, ...] = (
    # Languages
    "JavaScript",
    "TypeScript",
    "Python",
    "Java",
    "C#",
    "Go",
    "Golang",
    "Ruby",
    "PHP",
    "Rust",
    "Kotlin",
    "Swift",
    "Dart",
    "Elixir",
    "Scala",
    "Clojure",
    "R",
    "SQL",
    # Frontend
    "React",
    "React.js",
    "ReactJS",
    "Next.js",
    "NextJS",
    "Vue",
    "Vue.js",
    "VueJS",
    "Angular",
    "Svelte",
    "SvelteKit",
    "Nuxt",
    "Gatsby",
    "Remix",
    "Astro",
    "HTML",
    "CSS",
    "Sass",
    "SCSS",
    "Tailwind",
    "TailwindCSS",
    "Bootstrap",
    "Material UI",
    "Chakra UI",
    "Styled Components",
    # Backend
    "Node.js",
    "NodeJS",
    "Express",
    "NestJS",
    "Fastify",
    "Django",
    "Flask",
    "FastAPI",
    "Spring",
    "Spring Boot",
    "Rails",
    "Ruby on Rails",
    "Laravel",
    "Symfony",
    ".NET",
    "ASP.NET",
    "Gin",
    "Fiber",
    "Phoenix",
    "AdonisJS",
    # Mobile
    "React Native",
    "Flutter",
    "iOS",
    "Android",
    "SwiftUI",
    "Jetpack Compose",
    # Database
    "PostgreSQL",
    "MySQL",
    "MongoDB",
    "Redis",
    "SQLite",
    "DynamoDB",
    "Cassandra",
    "Neo4j",
    "Elasticsearch",
    "Supabase",
    "Firebase",
    "Prisma",
    # Cloud/DevOps
    "AWS",
    "Azure",
    "GCP",
    "Google Cloud",
    "Docker",
    "Kubernetes",
    "K8s",
    "Terraform",
    "CI/CD",
    "Jenkins",
    "GitHub Actions",
    "GitLab CI",
    "ArgoCD",
    "Helm",
    "Linux",
    "Nginx",
    # Data
    "Machine Learning",
    "ML",
    "AI",
    "Data Science",
    "Pandas",
    "NumPy",
    "TensorFlow",
    "PyTorch",
    "Spark",
    "Airflow",
    "dbt",
    "Snowflake",
    "BigQuery",
    "Kafka",
    "RabbitMQ",
    # Testing
    "Jest",
    "Cypress",
    "Playwright",
    "Selenium",
    "Testing Library",
    "Vitest",
    "Pytest",
    "JUnit",
    # Tools
    "Git",
    "GraphQL",
    "REST",
    "gRPC",
    "Microservices",
    "Monorepo",
    "Storybook",
    "Figma",
    "Jira",
    "Agile",
    "Scrum",
)


def _tech_pattern(keyword: str) -> Pattern[str]:
    # Lookarounds instead of \b so "C#" and ".NET" work and "R$" is not the R language.
    return re.compile(r"(?<![\w.#])" + re.escape(keyword) + r"(?![\w#+$])", _I)


TECH_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = tuple((kw, _tech_pattern(kw)) for kw in TECH_KEYWORDS)
