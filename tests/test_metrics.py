import pytest

from geogrid import config
from geogrid.config import VisibilityWeights
from geogrid.metrics import (
    aggregate,
    metric_band,
    rank_score,
    round_half_up_percent,
    visibility_score,
)
from geogrid.models import ErrorKind, GridPoint, GridResult


def make_results(ranks, errors=None):
    errors = errors or {}
    out = []
    for idx, rank in enumerate(ranks, start=1):
        point = GridPoint(id=idx, lat=0.0, lng=0.0)
        out.append(GridResult(point=point, rank=rank, error=errors.get(idx)))
    return out


def test_reference_ranks_produce_expected_summary():
    m = aggregate(make_results([2, 5, 8, 15, 25]))
    assert m.afpr == pytest.approx(5.0)
    assert m.afpr_defined
    assert m.grm == pytest.approx(11.0)
    assert m.tss == pytest.approx(20.0)
    assert m.distribution == {"1-3": 20, "4-10": 40, "11-20": 20, ">20": 20}


def test_unranked_counts_in_worst_bucket_but_not_in_means():
    m = aggregate(make_results([1, None, 4, None]))
    assert m.grm == pytest.approx(2.5)
    assert m.distribution[">20"] == 50
    assert m.tss == pytest.approx(50.0)
    assert m.resolved_count == 4
    assert m.ranked_count == 2


def test_errored_points_are_excluded_from_denominators():
    results = make_results([3, 7, None, 1], errors={3: ErrorKind.TIMED_OUT})
    m = aggregate(results)
    assert m.resolved_count == 3
    assert m.error_count == 1
    assert m.distribution == {"1-3": 67, "4-10": 33, "11-20": 0, ">20": 0}


def test_undefined_afpr_reports_zero_with_flag():
    m = aggregate(make_results([12, 30, None]))
    assert m.afpr == 0.0
    assert not m.afpr_defined
    assert m.grm_defined


def test_nothing_ranked_anywhere():
    m = aggregate(make_results([None, None]))
    assert not m.afpr_defined
    assert not m.grm_defined
    assert m.tss == 0.0
    assert m.visibility_score == 0.0
    assert m.distribution[">20"] == 100
    assert m.top_points == []


def test_empty_results():
    m = aggregate([])
    assert m.resolved_count == 0
    assert m.distribution == {"1-3": 0, "4-10": 0, "11-20": 0, ">20": 0}


def test_rounding_is_half_up_per_bucket():
    assert round_half_up_percent(1, 8) == 13  # 12.5
    assert round_half_up_percent(1, 3) == 33
    assert round_half_up_percent(2, 3) == 67
    assert round_half_up_percent(0, 0) == 0
    # Buckets are rounded independently and may not sum to 100.
    m = aggregate(make_results([1, 5, 12, 30, None, None, None, None]))
    assert m.distribution == {"1-3": 13, "4-10": 13, "11-20": 13, ">20": 63}


def test_top_and_weak_points_ordering():
    results = make_results([4, None, 1, 4, 9, 1])
    m = aggregate(results)
    assert [r.point.id for r in m.top_points] == [3, 6, 1]
    assert [r.point.id for r in m.weak_points] == [2, 5, 1]


def test_aggregate_is_idempotent():
    results = make_results([2, None, 11, 7], errors={4: ErrorKind.MALFORMED_RESPONSE})
    assert aggregate(results) == aggregate(results)


def test_rank_score_is_inverse_and_clamped():
    assert rank_score(0) == 100.0
    assert rank_score(config.RANK_SCALE) == 0.0
    assert rank_score(100) == 0.0
    assert rank_score(1) > rank_score(5)


def test_visibility_formula_uses_named_weights():
    weights = VisibilityWeights(afpr=1.0, grm=0.0, tss=0.0)
    assert visibility_score(2.0, 10.0, 0.0, weights) == pytest.approx(rank_score(2.0))

    weights = VisibilityWeights(afpr=0.0, grm=0.0, tss=1.0)
    assert visibility_score(2.0, 10.0, 40.0, weights) == pytest.approx(40.0)

    default = visibility_score(2.0, 4.0, 50.0)
    expected = 0.3 * rank_score(2.0) + 0.3 * rank_score(4.0) + 0.4 * 50.0
    assert default == pytest.approx(round(expected, 2))


def test_better_ranks_never_lower_visibility():
    worse = aggregate(make_results([8, 12, 15]))
    better = aggregate(make_results([1, 2, 15]))
    assert better.visibility_score > worse.visibility_score


def test_metric_bands_follow_thresholds(monkeypatch):
    assert metric_band(3.0, "rank") == "good"
    assert metric_band(7.0, "rank") == "warning"
    assert metric_band(12.0, "rank") == "poor"
    assert metric_band(60.0, "share") == "good"
    assert metric_band(30.0, "share") == "warning"
    assert metric_band(10.0, "share") == "poor"

    monkeypatch.setattr(config, "RANK_GOOD_BELOW", 8.0)
    assert metric_band(7.0, "rank") == "good"

    with pytest.raises(ValueError):
        metric_band(1.0, "volume")
