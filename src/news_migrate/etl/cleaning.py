"""HTML to text cleaning, content validation, and summary derivation."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from news_migrate.etl.models import NormalizedContent, SourceRecord, ValidationResult

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

SUMMARY_MAX_CHARS = 200
TRUNCATION_MARKER = "..."
MISSING_TITLE_ISSUE = "Missing or empty title"
MISSING_CONTENT_ISSUE = "Missing or empty content in all possible fields"

ContentExtractor = Callable[[SourceRecord], str | None]

# Tried in order; the first non-blank value is the article body.
CONTENT_EXTRACTORS: tuple[tuple[str, ContentExtractor], ...] = (
    ("content.text", lambda record: record.content_text),
    ("text", lambda record: record.text),
    ("body", lambda record: record.body),
    ("summary", lambda record: record.summary),
    ("seo_description", lambda record: record.seo_description),
)


@dataclass(frozen=True, slots=True)
class ValidationPolicy:
    """Thresholds deciding which source records are eligible for migration."""

    name: str
    min_content_chars: int
    max_title_chars: int
    accepted_statuses: frozenset[int]
    allow_missing_status: bool

    def accepts_status(self, status: int | None) -> bool:
        if status is None:
            return self.allow_missing_status
        return status in self.accepted_statuses


STRICT_POLICY = ValidationPolicy(
    name="strict",
    min_content_chars=50,
    max_title_chars=200,
    accepted_statuses=frozenset({1}),
    allow_missing_status=False,
)
PERMISSIVE_POLICY = ValidationPolicy(
    name="permissive",
    min_content_chars=5,
    max_title_chars=500,
    accepted_statuses=frozenset({0, 1}),
    allow_missing_status=True,
)
_POLICIES = {policy.name: policy for policy in (STRICT_POLICY, PERMISSIVE_POLICY)}


def get_policy(name: str) -> ValidationPolicy:
    """Resolve a validation policy by its configured name."""

    try:
        return _POLICIES[name.strip().lower()]
    except KeyError as error:
        raise ValueError(
            f"Unknown validation policy {name!r}. Expected one of: {', '.join(sorted(_POLICIES))}",
        ) from error


def html_to_text(raw_html: str | None) -> str:
    """Convert HTML markup into normalized plain text.

    Best-effort regex sanitizer: malformed markup may leave stray characters.
    """

    if not raw_html:
        return ""
    no_scripts = _SCRIPT_STYLE_RE.sub(" ", raw_html)
    stripped = _TAG_RE.sub(" ", no_scripts)
    normalized = _WHITESPACE_RE.sub(" ", stripped)
    return normalized.strip()


def resolve_content(record: SourceRecord) -> tuple[str | None, str]:
    """Return (field_name, raw_text) of the first non-blank content field."""

    for field_name, extractor in CONTENT_EXTRACTORS:
        value = extractor(record)
        if isinstance(value, str) and value.strip():
            return field_name, value
    return None, ""


def validate_record(record: SourceRecord, policy: ValidationPolicy) -> ValidationResult:
    """Check required fields, content length, title length, and lifecycle status."""

    issues: list[str] = []
    title = record.title or ""
    if not title.strip():
        issues.append(MISSING_TITLE_ISSUE)

    _, raw_text = resolve_content(record)
    if not raw_text:
        issues.append(MISSING_CONTENT_ISSUE)

    clean_length = len(html_to_text(raw_text))
    if clean_length < policy.min_content_chars:
        issues.append(
            f"Content too short ({clean_length} chars, "
            f"minimum {policy.min_content_chars} characters)",
        )

    if len(title) > policy.max_title_chars:
        issues.append(f"Title too long (maximum {policy.max_title_chars} characters)")

    if not policy.accepts_status(record.status):
        issues.append(f"Post status is {record.status} (not accepted by {policy.name} policy)")

    return ValidationResult(is_valid=not issues, issues=issues)


def derive_summary(
    *,
    summary: str | None,
    short_description: str | None,
    clean_text: str,
    max_chars: int = SUMMARY_MAX_CHARS,
) -> str | None:
    """Pass through an explicit summary, else cut the cleaned body with a marker."""

    for candidate in (summary, short_description):
        if candidate and candidate.strip():
            return candidate.strip()
    if not clean_text:
        return None
    if len(clean_text) <= max_chars:
        return clean_text
    return clean_text[:max_chars] + TRUNCATION_MARKER


def normalize_record(record: SourceRecord, policy: ValidationPolicy) -> NormalizedContent:
    """Validate one record and derive its cleaned body and summary."""

    validation = validate_record(record, policy)
    _, raw_text = resolve_content(record)
    clean_text = html_to_text(raw_text)
    return NormalizedContent(
        raw_text=raw_text,
        clean_text=clean_text,
        summary=derive_summary(
            summary=record.summary,
            short_description=record.seo_description,
            clean_text=clean_text,
        ),
        is_valid=validation.is_valid,
        issues=validation.issues,
    )
