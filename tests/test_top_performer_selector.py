from pathlib import Path
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from processor.models import Creative
from processor.top_performer_selector import days_running, reach_midpoint, select_top_performers

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def test_midpoint_of_range():
    assert reach_midpoint(Creative(creative_id="1", reach_lower=1000, reach_upper=2000)) == 1500
    assert reach_midpoint(Creative(creative_id="1", total_reach=700)) == 700
    assert reach_midpoint(Creative(creative_id="1")) == 0


def test_days_running_accepts_naive_start():
    creative = Creative(creative_id="1", started_at=datetime(2025, 5, 22))
    assert days_running(creative, NOW) == 10
    assert days_running(Creative(creative_id="1"), NOW) == 0


def test_requires_detail_id_and_respects_cap():
    creatives = [
        Creative(creative_id="a", detail_id=None, reach_lower=10_000, reach_upper=20_000),
        Creative(creative_id="b", detail_id="2", reach_lower=100, reach_upper=200),
        Creative(creative_id="c", detail_id="3", reach_lower=1000, reach_upper=2000),
        Creative(creative_id="d", detail_id="4", reach_lower=500, reach_upper=600),
        Creative(creative_id="e", detail_id="5"),
    ]
    top = select_top_performers(creatives, cap=3, now=NOW)
    assert [c.creative_id for c in top] == ["c", "d", "b"]


def test_ties_broken_by_days_running():
    creatives = [
        Creative(creative_id="new", detail_id="1", total_reach=500, started_at=NOW - timedelta(days=2)),
        Creative(creative_id="old", detail_id="2", total_reach=500, started_at=NOW - timedelta(days=40)),
    ]
    top = select_top_performers(creatives, cap=1, now=NOW)
    assert [c.creative_id for c in top] == ["old"]


def test_zero_cap():
    assert select_top_performers([Creative(creative_id="a", detail_id="1")], cap=0) == []
