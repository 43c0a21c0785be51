"""Pure bibliometric index functions.

Every function accepts an empty input and returns 0 for it. Nothing here
touches storage.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

# Mentions per source; news coverage weighs most, a single social post least.
ALTMETRIC_WEIGHTS: dict[str, float] = {
    "news": 8.0,
    "blogs": 5.0,
    "policy": 3.0,
    "wikipedia": 3.0,
    "social": 0.25,
}

FIELD_AVERAGE_CITATIONS: dict[str, float] = {
    "education": 25,
    "psychology": 35,
    "cognitive_science": 40,
    "neuroscience": 45,
    "computer_science": 30,
    "data_science": 28,
    "social_sciences": 22,
    "humanities": 15,
    "medicine": 50,
    "natural_sciences": 42,
    "engineering": 32,
    "mathematics": 20,
    "other": 30,
}

SIGNIFICANCE_WEIGHTS = {"importance": 0.4, "explicitness": 0.3, "centrality": 0.3}


def _descending(counts: Iterable[int]) -> list[int]:
    return sorted((max(0, int(c)) for c in counts), reverse=True)


def h_index(counts: Iterable[int]) -> int:
    """Largest h such that h publications have at least h citations each."""
    h = 0
    for rank, count in enumerate(_descending(counts), start=1):
        if count < rank:
            break
        h = rank
    return h


def g_index(counts: Iterable[int]) -> int:
    """Largest g such that the top g publications hold at least g**2 citations."""
    g = 0
    running = 0
    for rank, count in enumerate(_descending(counts), start=1):
        running += count
        if running < rank * rank:
            break
        g = rank
    return g


def i10_index(counts: Iterable[int]) -> int:
    return sum(1 for c in counts if int(c) >= 10)


def m_index(h: int, academic_age_years: int) -> float:
    if academic_age_years <= 0:
        return 0.0
    return h / academic_age_years


def citation_significance(semantics: Mapping[str, Any] | None) -> float:
    """Weighted importance/explicitness/centrality, clamped to [0, 10]."""
    if not semantics:
        return 0.0
    score = 0.0
    for key, weight in SIGNIFICANCE_WEIGHTS.items():
        try:
            score += float(semantics.get(key) or 0) * weight
        except (TypeError, ValueError):
            continue
    return min(10.0, max(0.0, score))


def altmetric_composite(mentions: Mapping[str, int] | None, weights: Mapping[str, float] | None = None) -> float:
    """Weighted sum of per-source mention counts.

    Unknown sources are ignored and negative counts count as zero, so the
    result never decreases when any single count grows.
    """
    if not mentions:
        return 0.0
    table = weights or ALTMETRIC_WEIGHTS
    total = 0.0
    for source, weight in table.items():
        total += max(0, int(mentions.get(source, 0) or 0)) * weight
    return round(total, 4)


def field_average_citations(field: str | None) -> float:
    return float(FIELD_AVERAGE_CITATIONS.get(str(field or "other"), FIELD_AVERAGE_CITATIONS["other"]))


def field_normalized_impact(total_citations: int, field: str | None) -> float:
    average = field_average_citations(field)
    if average <= 0:
        return 0.0
    return total_citations / average


def percentile_rank(fnci: float) -> int:
    return min(99, round(fnci * 50))


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def latest_value(values: Sequence[Any]) -> Any | None:
    """Most recent entry by ``recorded_at``; insertion order is not trusted."""
    if not values:
        return None
    return max(values, key=lambda v: as_utc(v.recorded_at))


def metric_trend(points: Sequence[tuple[datetime, float]]) -> dict[str, float | str]:
    """Direction and change between the earliest and latest point."""
    if len(points) < 2:
        return {"direction": "flat", "change": 0.0, "change_percent": 0.0}
    ordered = sorted(points, key=lambda p: as_utc(p[0]))
    first, last = ordered[0][1], ordered[-1][1]
    change = last - first
    change_percent = (change / first * 100.0) if first else 0.0
    if change > 0:
        direction = "up"
    elif change < 0:
        direction = "down"
    else:
        direction = "flat"
    return {"direction": direction, "change": round(change, 4), "change_percent": round(change_percent, 2)}
