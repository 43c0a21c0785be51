from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.services import bibliometrics


@pytest.mark.parametrize(
    ("counts", "expected"),
    [([10, 8, 5, 4, 3], 4), ([0, 0, 0], 0), ([100], 1), ([], 0), ([3, 3, 3], 3)],
)
def test_h_index(counts: list[int], expected: int) -> None:
    assert bibliometrics.h_index(counts) == expected


def test_h_index_ignores_input_order() -> None:
    assert bibliometrics.h_index([3, 10, 4, 8, 5]) == 4


def test_g_index() -> None:
    assert bibliometrics.g_index([10, 8, 5, 4, 3]) == 5
    assert bibliometrics.g_index([]) == 0
    assert bibliometrics.g_index([0, 0]) == 0


def test_i10_index() -> None:
    assert bibliometrics.i10_index([12, 10, 9, 5]) == 2
    assert bibliometrics.i10_index([]) == 0


def test_m_index_guards_zero_age() -> None:
    assert bibliometrics.m_index(4, 0) == 0.0
    assert bibliometrics.m_index(4, 8) == 0.5


def test_citation_significance_is_weighted_and_clamped() -> None:
    assert bibliometrics.citation_significance(None) == 0.0
    score = bibliometrics.citation_significance({"importance": 10, "explicitness": 5, "centrality": 5})
    assert score == pytest.approx(7.0)
    assert bibliometrics.citation_significance({"importance": 50, "explicitness": 50, "centrality": 50}) == 10.0


def test_altmetric_composite_is_monotone_in_each_source() -> None:
    base = {"social": 4, "news": 1, "blogs": 1, "policy": 0, "wikipedia": 0}
    score = bibliometrics.altmetric_composite(base)
    assert score == pytest.approx(4 * 0.25 + 8 + 5)
    for source in base:
        bumped = dict(base, **{source: base[source] + 1})
        assert bibliometrics.altmetric_composite(bumped) >= score
    assert bibliometrics.altmetric_composite({}) == 0.0


def test_field_normalized_impact_and_percentile() -> None:
    fnci = bibliometrics.field_normalized_impact(70, "psychology")
    assert fnci == pytest.approx(2.0)
    assert bibliometrics.percentile_rank(fnci) == 99
    assert bibliometrics.percentile_rank(0.5) == 25
    assert bibliometrics.field_average_citations("unknown-field") == 30.0


def test_latest_value_uses_recorded_at_not_insertion_order() -> None:
    older = SimpleNamespace(value=1.0, recorded_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    newer = SimpleNamespace(value=2.0, recorded_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
    assert bibliometrics.latest_value([newer, older]) is newer
    assert bibliometrics.latest_value([]) is None


def test_metric_trend() -> None:
    points = [
        (datetime(2025, 1, 1, tzinfo=timezone.utc), 8.0),
        (datetime(2024, 1, 1, tzinfo=timezone.utc), 4.0),
    ]
    trend = bibliometrics.metric_trend(points)
    assert trend["direction"] == "up"
    assert trend["change"] == 4.0
    assert trend["change_percent"] == 100.0
    assert bibliometrics.metric_trend(points[:1])["direction"] == "flat"
