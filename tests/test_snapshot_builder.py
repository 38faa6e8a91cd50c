from pathlib import Path
import sys
from datetime import datetime, timezone

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from processor.models import (
    AcquisitionResult,
    AgeGenderShare,
    Creative,
    DemographicSample,
    RegionShare,
)
from processor.pipeline import build_report
from processor.snapshot_builder import build_snapshot

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _result(creatives):
    return AcquisitionResult(
        page_id="123",
        page_name="Acme",
        creatives=creatives,
        total_found=len(creatives),
        strategy="api",
        fetched_at=NOW,
    )


def test_snapshot_fields():
    sample = DemographicSample(
        detail_id="d1",
        age_gender=(AgeGenderShare("25-34", "female", 70.0), AgeGenderShare("35-44", "male", 30.0)),
        regions=(RegionShare("DE", 80.0), RegionShare("FR", 20.0)),
        total_reach=1000,
    )
    creatives = [
        Creative(creative_id="ad-1", detail_id="d1", total_reach=1000, media_kind="video",
                 started_at=datetime(2025, 5, 22, tzinfo=timezone.utc), demographics=sample),
        Creative(creative_id="ad-2", total_reach=0, media_kind="image",
                 started_at=datetime(2025, 5, 30, tzinfo=timezone.utc),
                 stopped_at=datetime(2025, 5, 31, tzinfo=timezone.utc)),
    ]

    snap = build_snapshot(_result(creatives), now=NOW)

    assert snap["total_found"] == 2
    assert snap["active_count"] == 1
    assert snap["total_reach"] == 1000
    assert snap["avg_reach_per_creative"] == 500
    assert snap["video_count"] == 1
    assert snap["image_percentage"] == 50.0
    assert snap["avg_creative_age_days"] == pytest.approx(6.0)
    assert snap["dominant_gender"] == "female"
    assert snap["dominant_age_range"] == "25-34"
    assert snap["top_region_1_code"] == "DE"
    assert snap["top_region_2_pct"] == 20.0
    assert snap["top_region_3_code"] is None
    assert snap["demographics"]["creatives_with_demographics"] == 1
    assert snap["spend_by_region"][0]["region"] == "DE"


def test_snapshot_of_empty_result():
    snap = build_snapshot(_result([]), now=NOW)
    assert snap["total_reach"] == 0
    assert snap["dominant_gender"] is None
    assert snap["demographics"] is None
    assert snap["spend_by_region"] is None


def test_report_on_empty_input():
    facets = build_report([])
    assert facets.spend.total_estimated_spend == 0.0
    assert facets.products.products == []
    assert facets.media.video == 0
    assert facets.trends.groups == []
