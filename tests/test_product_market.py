from pathlib import Path
import sys
from datetime import datetime, timezone

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from processor.models import Creative, DemographicSample, RegionShare
from processor.product_market import build_product_matrix, product_key


def _creative(cid, reach, title=None, body=None, regions=(("DE", 100.0),), **kwargs):
    sample = DemographicSample(
        detail_id=cid, regions=tuple(RegionShare(r, p) for r, p in regions), total_reach=reach,
    )
    return Creative(
        creative_id=cid, detail_id=f"d{cid}", total_reach=reach,
        link_title=title, body=body, demographics=sample, **kwargs,
    )


def test_product_key_fallbacks():
    assert product_key(Creative(creative_id="1", link_title="Summer Sale")) == "Summer Sale"
    assert product_key(Creative(creative_id="1", body="short body ")) == "short body"
    long_body = "a" * 60
    assert product_key(Creative(creative_id="1", body=long_body)) == "a" * 50 + "..."
    assert product_key(Creative(creative_id="7")) == "Ad 7"


def test_creatives_grouped_by_title():
    early = datetime(2025, 1, 5, tzinfo=timezone.utc)
    late = datetime(2025, 3, 1, tzinfo=timezone.utc)
    creatives = [
        _creative("1", 1000, title="Boots", regions=(("DE", 60.0), ("FR", 40.0)), started_at=late),
        _creative("2", 500, title="Boots", regions=(("DE", 100.0),), started_at=early,
                  stopped_at=late),
        _creative("3", 3000, title="Jackets", regions=(("NL", 100.0),)),
    ]

    matrix = build_product_matrix(creatives)

    assert [p.product_name for p in matrix.products] == ["Jackets", "Boots"]
    boots = matrix.products[1]
    assert boots.creative_count == 2
    assert boots.total_reach == 1500
    assert boots.started_at == early
    assert boots.is_active is True
    assert boots.creative_ids == ["d1", "d2"]
    assert [(m.region, m.reach) for m in boots.markets] == [("DE", 1100), ("FR", 400)]
    assert matrix.markets == ["DE", "FR", "NL"]
    assert matrix.total_reach == 4500


def test_unenriched_creatives_are_skipped():
    creatives = [
        _creative("1", 1000, title="Boots"),
        Creative(creative_id="2", link_title="Hats", total_reach=9999),
    ]
    matrix = build_product_matrix(creatives)
    assert [p.product_name for p in matrix.products] == ["Boots"]


def test_product_list_capped_at_twenty():
    creatives = [_creative(str(i), 100 + i, title=f"P{i}") for i in range(25)]
    matrix = build_product_matrix(creatives)

    assert len(matrix.products) == 20
    assert matrix.products[0].product_name == "P24"
    assert matrix.total_reach == sum(100 + i for i in range(25))


def test_empty_matrix():
    matrix = build_product_matrix([])
    assert matrix.products == []
    assert matrix.total_reach == 0
