"""Rule-based event categorization for migrated articles."""

from __future__ import annotations

import re

DEFAULT_EVENT_CATEGORY = "general"

# Order is priority: the first rule whose pattern matches wins.
EVENT_CATEGORY_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "politics",
        re.compile(
            r"\b(seçim|parti|milletvekili|başkan|hükümet|meclis|politika"
            r"|election|parliament|government|minister|president)\b",
        ),
    ),
    (
        "economy",
        re.compile(
            r"\b(ekonomi|dolar|euro|borsa|enflasyon|faiz|tcmb|merkez bankası"
            r"|economy|inflation|interest rate|stock market|central bank)\b",
        ),
    ),
    (
        "sports",
        re.compile(
            r"\b(futbol|basketbol|spor|maç|takım|galatasaray|fenerbahçe|beşiktaş"
            r"|football|basketball|match|league)\b",
        ),
    ),
    (
        "technology",
        re.compile(
            r"\b(teknoloji|yapay zeka|internet|bilgisayar|telefon|uygulama"
            r"|technology|artificial intelligence|computer|smartphone)\b",
        ),
    ),
    (
        "health",
        re.compile(
            r"\b(sağlık|hastane|doktor|tedavi|aşı|covid|corona"
            r"|health|hospital|doctor|vaccine)\b",
        ),
    ),
)


def categorize_event(title: str, content: str) -> str:
    """Classify an article into a coarse event category."""

    text = f"{title} {content}".lower()
    for category, pattern in EVENT_CATEGORY_RULES:
        if pattern.search(text):
            return category
    return DEFAULT_EVENT_CATEGORY
