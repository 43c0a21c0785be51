from __future__ import annotations

import re
from collections.abc import Iterable

from app.models.enums import CitationType


_WORD_SPLIT_RE = re.compile(r"\W+")

_APA_RE = re.compile(r"\(([A-Za-z\s]+,\s+\d{4}(?:;\s+[A-Za-z\s]+,\s+\d{4})*)\)")
_IEEE_RE = re.compile(r"\[(\d+(?:,\s*\d+)*)\]")
_DOI_RE = re.compile(r"https?://doi\.org/([0-9.]+/[A-Za-z0-9.]+)")

_CITATION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("apa", _APA_RE),
    ("ieee", _IEEE_RE),
    ("doi", _DOI_RE),
)


def significant_words(*parts: str | None, min_length: int = 4) -> set[str]:
    text = " ".join(p for p in parts if p).lower()
    return {w for w in _WORD_SPLIT_RE.split(text) if len(w) >= min_length}


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    left, right = set(a), set(b)
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def extract_citation_mentions(text: str) -> list[dict[str, object]]:
    out: list[dict[str, object]] = []
    for style, pattern in _CITATION_PATTERNS:
        for m in pattern.finditer(text or ""):
            out.append(
                {
                    "text": m.group(0),
                    "style": style,
                    "type": CitationType.IN_TEXT.value,
                    "position": {"start": m.start(), "end": m.end()},
                }
            )
    return out
