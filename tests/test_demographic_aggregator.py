from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from processor.demographic_aggregator import (
    aggregate_demographics,
    normalize_breakdown,
    sample_weight,
    weighted_mean,
)
from processor.models import (
    AgeGenderShare,
    Creative,
    DemographicSample,
    GenderShare,
    RegionShare,
)


def _creative(idx, sample):
    return Creative(creative_id=f"ad-{idx}", detail_id=str(1000 + idx), demographics=sample)


def _sample(total_reach=None, age_gender=(), regions=(), lower=None, upper=None):
    return DemographicSample(
        detail_id="x",
        age_gender=tuple(AgeGenderShare(*row) for row in age_gender),
        regions=tuple(RegionShare(*row) for row in regions),
        total_reach=total_reach,
        impressions_lower=lower,
        impressions_upper=upper,
    )


def test_weight_prefers_reach_then_impression_midpoint():
    assert sample_weight(_sample(total_reach=500)) == (500.0, True)
    assert sample_weight(_sample(lower=1000, upper=2000)) == (1500.0, True)
    assert sample_weight(_sample()) == (1.0, False)
    assert sample_weight(None) == (0.0, False)


def test_weighted_mean_zero_weights():
    assert weighted_mean([10, 20], [0, 0]) == 0.0
    assert weighted_mean([10, 20], [1, 3]) == 17.5


def test_uniform_shape_survives_uneven_weights():
    rows = [("25-34", "female", 60.0), ("25-34", "male", 40.0)]
    creatives = [
        _creative(1, _sample(total_reach=100, age_gender=rows)),
        _creative(2, _sample(total_reach=None, age_gender=rows)),
        _creative(3, _sample(total_reach=50, age_gender=rows)),
    ]

    result = aggregate_demographics(creatives)

    assert [(s.age, s.gender, s.percentage) for s in result.age_gender] == [
        ("25-34", "female", 60.0),
        ("25-34", "male", 40.0),
    ]
    assert [(g.gender, g.percentage) for g in result.gender] == [("female", 60.0), ("male", 40.0)]
    assert result.creatives_with_demographics == 3
    assert result.creatives_without_reach == 1


def test_high_reach_creative_dominates():
    creatives = [
        _creative(1, _sample(total_reach=900, regions=[("DE", 100.0)])),
        _creative(2, _sample(total_reach=100, regions=[("FR", 100.0)])),
    ]
    result = aggregate_demographics(creatives)
    assert [(r.region, r.percentage) for r in result.regions] == [("DE", 90.0), ("FR", 10.0)]


def test_breakdowns_sum_to_hundred():
    creatives = [
        _creative(1, _sample(total_reach=333, age_gender=[
            ("18-24", "male", 11.1), ("25-34", "female", 33.3), ("35-44", "male", 22.2),
        ], regions=[("DE", 33.3), ("NL", 33.3), ("BE", 33.3)])),
        _creative(2, _sample(total_reach=777, age_gender=[
            ("18-24", "female", 7.0), ("65+", "unknown", 3.0),
        ], regions=[("DE", 1.0), ("AT", 2.0)])),
    ]
    result = aggregate_demographics(creatives)

    for breakdown in (result.age, result.gender, result.age_gender, result.regions):
        assert abs(sum(e.percentage for e in breakdown) - 100) <= 0.01


def test_age_breakdown_sorted_by_bracket():
    creatives = [_creative(1, _sample(total_reach=10, age_gender=[
        ("65+", "male", 10.0), ("18-24", "male", 30.0), ("35-44", "female", 60.0),
    ]))]
    result = aggregate_demographics(creatives)
    assert [a.age for a in result.age] == ["18-24", "35-44", "65+"]


def test_no_samples_returns_empty_result():
    result = aggregate_demographics([Creative(creative_id="ad-1")])
    assert result.age == []
    assert result.regions == []
    assert result.creatives_with_demographics == 0
    assert aggregate_demographics([]).total_weight == 0.0


def test_normalize_leaves_zero_group_untouched():
    entries = [GenderShare("male", 0.0), GenderShare("female", 0.0)]
    assert normalize_breakdown(entries) == entries


def test_normalize_within_tolerance_only_rounds():
    entries = [GenderShare("male", 49.996), GenderShare("female", 50.0)]
    result = normalize_breakdown(entries)
    assert [e.percentage for e in result] == [50.0, 50.0]


def test_constant_weights_give_arithmetic_mean():
    values = [12.5, 40.0, 47.5, 3.0]
    for w in (0.25, 1.0, 7.0, 120_000.0):
        assert weighted_mean(values, [w] * len(values)) == pytest.approx(sum(values) / len(values))
