"""Utility helpers for EventsFixer."""

from __future__ import annotations

from datetime import UTC, datetime
import hashlib
import html
import re
import unicodedata

from markupsafe import Markup

_slug_invalid = re.compile(r"[^a-z0-9]+")
_whitespace = re.compile(r"\s+")
_link_pattern = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_bold_pattern = re.compile(r"\*\*(.+?)\*\*")


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def hash_token(token: str) -> str:
    """Return the hex SHA-256 digest stored in place of a bearer token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def slugify(value: str) -> str:
    """Return a canonical slug suitable for URLs."""
    value = (
        unicodedata.normalize("NFKD", value or "")
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    value = value.strip().lower()
    value = _slug_invalid.sub("-", value)
    value = value.strip("-")
    return value


def collapse_whitespace(value: str | None) -> str:
    return _whitespace.sub(" ", value or "").strip()


def sanitize_href(raw: str | None) -> str | None:
    """Return a safe URL for anchors or ``None`` when unsafe."""

    normalized = (raw or "").strip()
    if not normalized:
        return None
    lowered = normalized.lower()
    if lowered.startswith(("http://", "https://", "mailto:")) or normalized.startswith(
        ("/", "#")
    ):
        return normalized
    return None


def _render_inline(text: str) -> str:
    bolded = _bold_pattern.sub(lambda match: f"<strong>{match.group(1)}</strong>", text)

    def replace_link(match: re.Match[str]) -> str:
        href = sanitize_href(html.unescape(match.group(2)))
        if not href:
            return match.group(0)
        safe_href = html.escape(href, quote=True)
        return f'<a href="{safe_href}" rel="nofollow noopener noreferrer">{match.group(1)}</a>'

    return _link_pattern.sub(replace_link, bolded)


def render_paragraphs(value: str | None) -> Markup:
    """Render free text into escaped paragraphs.

    Blank lines separate paragraphs, single newlines become ``<br>``. Only
    ``**bold**`` and ``[label](url)`` links with safe schemes are converted.
    """

    if not value or not value.strip():
        return Markup("")
    escaped = html.escape(value.strip())
    paragraphs = [part.strip() for part in re.split(r"\n\s*\n", escaped) if part.strip()]
    rendered = [
        "<p>" + "<br>".join(_render_inline(line.strip()) for line in part.splitlines()) + "</p>"
        for part in paragraphs
    ]
    return Markup("\n".join(rendered))
