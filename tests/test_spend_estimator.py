from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from processor.media_pricing import DEFAULT_CPM, get_cpm
from processor.models import Creative, DemographicSample, RegionShare
from processor.spend_estimator import (
    analyze_spend,
    apportion_reach,
    creative_title,
    estimate_creative_spend,
    format_currency,
    format_number,
    round_half_up,
)

CPM = {"DE": 10.0, "FR": 8.0}


def _creative(cid, reach, regions, **kwargs):
    sample = None
    if regions is not None:
        sample = DemographicSample(
            detail_id=cid,
            regions=tuple(RegionShare(r, p) for r, p in regions),
            total_reach=reach,
        )
    return Creative(creative_id=cid, detail_id=cid, total_reach=reach, demographics=sample, **kwargs)


def test_de_fr_split_spend():
    creative = _creative("1", 1000, [("DE", 70.0), ("FR", 30.0)])

    spend = estimate_creative_spend(creative, CPM)

    assert spend.estimated_spend == pytest.approx(9.4)
    assert [(r.region, r.reach) for r in spend.by_region] == [("DE", 700), ("FR", 300)]


def test_creative_without_sample_is_excluded():
    creatives = [
        _creative("1", 1000, [("DE", 70.0), ("FR", 30.0)]),
        _creative("2", 5000, None),
    ]
    analysis = analyze_spend(creatives, CPM)

    assert [c.creative_id for c in analysis.top_creatives] == ["1"]
    assert analysis.total_reach == 1000
    assert analysis.total_estimated_spend == pytest.approx(9.4)
    assert analysis.average_cpm == pytest.approx(9.4)


def test_zero_reach_is_excluded():
    assert estimate_creative_spend(_creative("1", 0, [("DE", 100.0)]), CPM) is None


def test_regions_summed_across_creatives():
    creatives = [
        _creative("1", 1000, [("DE", 50.0), ("FR", 50.0)]),
        _creative("2", 2000, [("de", 100.0)]),
    ]
    analysis = analyze_spend(creatives, CPM)

    by_region = {r.region: r for r in analysis.by_region}
    assert by_region["DE"].reach == 2500
    assert by_region["FR"].reach == 500
    assert analysis.by_region[0].region == "DE"
    assert [c.creative_id for c in analysis.top_creatives] == ["2", "1"]


def test_empty_input_gives_zeroed_analysis():
    analysis = analyze_spend([])
    assert analysis.total_estimated_spend == 0.0
    assert analysis.average_cpm == 0.0
    assert analysis.by_region == []


def test_unknown_country_uses_default_cpm():
    assert get_cpm("ZZ") == DEFAULT_CPM
    assert get_cpm("de", {"DE": 3.0}) == 3.0


def test_half_up_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert apportion_reach(5, 50.0) == 3


def test_title_fallbacks():
    assert creative_title(Creative(creative_id="ad-1", link_title="Shoes")) == "Shoes"
    assert creative_title(Creative(creative_id="ad-1", body="x" * 80)) == "x" * 50
    assert creative_title(Creative(creative_id="ad-1")) == "Ad ad-1"


def test_formatting():
    assert format_currency(1234.5) == "$1,235"
    assert format_number(1_500_000) == "1.5M"
    assert format_number(2_300) == "2.3K"
    assert format_number(999) == "999"


def test_apportioned_reach_stays_within_rounding_bound():
    sample = DemographicSample(
        detail_id="d",
        regions=(RegionShare("DE", 33.5), RegionShare("FR", 33.5), RegionShare("NL", 33.0)),
    )
    result = estimate_creative_spend(Creative(creative_id="c", total_reach=5, demographics=sample), CPM)

    region_reach = sum(r.reach for r in result.by_region)
    # 1.675 -> 2, 1.675 -> 2, 1.65 -> 2
    assert region_reach == 6
    assert region_reach <= 5 + len(sample.regions)
