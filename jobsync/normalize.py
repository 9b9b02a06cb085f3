from __future__ import annotations

import html as html_lib
import re
from datetime import datetime, timezone
from typing import Any, List, Optional
from urllib.parse import urlsplit, urlunsplit

from bs4 import BeautifulSoup


def canonicalize_url(url: str) -> str:
    parts = urlsplit(url.strip())
    # Drop fragments for dedupe stability.
    parts = parts._replace(fragment="")
    return urlunsplit(parts)


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip())


def normalize_multiline(text: str) -> str:
    """Collapse runs of spaces per line and keep at most one blank line."""
    lines = [re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in (text or "").split("\n")]
    out = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", out).strip()


def html_to_text(html: str) -> str:
    """Render provider HTML (possibly entity-escaped) as plain multi-line text."""
    if not html:
        return ""

    # Greenhouse ships content as escaped HTML ("&lt;p&gt;..."), unescape once first.
    if "&lt;" in html and "<" not in html:
        html = html_lib.unescape(html)

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    text = soup.get_text("\n")
    return normalize_multiline(html_lib.unescape(text))


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 strings or epoch milliseconds into an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None

    iso = value.replace("Z", "+00:00")
    # Recruitee: "2026-10-05 09:00:00 UTC"
    if iso.endswith(" UTC"):
        iso = iso[:-4] + "+00:00"
    try:
        dt = datetime.fromisoformat(iso)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def clean_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def clean_id(value: Any) -> Optional[str]:
    """Provider ids arrive as ints or strings; anything else is malformed."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return clean_str(value)


def str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def join_blocks(*parts: Optional[str]) -> str:
    return "\n\n".join(p for p in parts if p)
